class StoreError(Exception):
    pass


class UniqueViolationError(StoreError):
    def __init__(self, table: str, constraint: str | None = None) -> None:
        super().__init__(f"unique violation on {table} ({constraint or 'unknown constraint'})")
        self.table = table
        self.constraint = constraint


class DependencyUnavailableError(StoreError):
    pass
