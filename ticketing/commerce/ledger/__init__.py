from ticketing.commerce.ledger.service import SOURCE_TYPES, BalanceCheck, LedgerStore

__all__ = ["SOURCE_TYPES", "BalanceCheck", "LedgerStore"]
