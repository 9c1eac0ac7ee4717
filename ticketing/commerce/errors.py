from ticketing.db.errors import DependencyUnavailableError


class CommerceError(Exception):
    pass


class CommerceValidationError(CommerceError):
    pass


class CollisionExhaustedError(CommerceError):
    pass


class ConflictError(CommerceError):
    pass


class AlreadyRefundedError(ConflictError):
    pass


class AlreadyClaimedError(ConflictError):
    pass


class CapExceededError(ConflictError):
    pass


class InsufficientPointsError(ConflictError):
    pass


class DuplicateAwardError(ConflictError):
    pass


class OrderStateConflictError(ConflictError):
    pass


class RewardUnavailableError(ConflictError):
    pass


class MilestoneNotAchievedError(ConflictError):
    pass


class NotFoundError(CommerceError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class RepNotFoundError(NotFoundError):
    pass


class RewardNotFoundError(NotFoundError):
    pass


class MilestoneNotFoundError(NotFoundError):
    pass


class TicketTypeNotFoundError(NotFoundError):
    pass


class DiscountNotFoundError(NotFoundError):
    pass


__all__ = [
    "AlreadyClaimedError",
    "AlreadyRefundedError",
    "CapExceededError",
    "CollisionExhaustedError",
    "CommerceError",
    "CommerceValidationError",
    "ConflictError",
    "DependencyUnavailableError",
    "DiscountNotFoundError",
    "DuplicateAwardError",
    "InsufficientPointsError",
    "MilestoneNotAchievedError",
    "MilestoneNotFoundError",
    "NotFoundError",
    "OrderNotFoundError",
    "OrderStateConflictError",
    "RepNotFoundError",
    "RewardNotFoundError",
    "RewardUnavailableError",
    "TicketTypeNotFoundError",
]
