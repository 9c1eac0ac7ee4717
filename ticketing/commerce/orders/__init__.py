from ticketing.commerce.orders.service import (
    CustomerDetails,
    DraftItem,
    OrderCompletion,
    OrderFulfillmentService,
    RefundResult,
)

__all__ = [
    "CustomerDetails",
    "DraftItem",
    "OrderCompletion",
    "OrderFulfillmentService",
    "RefundResult",
]
