from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

import structlog

from ticketing.commerce.errors import CommerceValidationError, DiscountNotFoundError, RepNotFoundError
from ticketing.commerce.identifiers.service import IdentifierIssuer
from ticketing.commerce.program_settings import ProgramSettingsStore
from ticketing.db.models.discounts import Discount
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.store import RecordStore

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def compute_discount_amount(discount: Discount, subtotal: Decimal) -> Decimal:
    value = Decimal(discount.value)
    if discount.discount_type == "percentage":
        amount = (subtotal * value / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        amount = value.quantize(CENT, rounding=ROUND_HALF_UP)
    return min(subtotal, max(Decimal("0"), amount))


class DiscountService:
    def __init__(self, store: RecordStore, *, issuer: IdentifierIssuer | None = None) -> None:
        self._store = store
        self._issuer = issuer or IdentifierIssuer(store)

    async def issue_for_rep(
        self,
        *,
        rep_id: str,
        org_id: str,
        now_utc: datetime,
        applicable_event_ids: list[str] | None = None,
    ) -> Discount:
        rep = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if rep is None:
            raise RepNotFoundError(rep_id)
        if rep.status != "active":
            raise CommerceValidationError("discount codes are issued to active reps only")

        settings = await ProgramSettingsStore.load(self._store, org_id=org_id)
        discount = await self._issuer.insert_discount(
            org_id=org_id,
            first_name=rep.first_name,
            discount_type=settings.default_discount_type,
            value=Decimal(settings.default_discount_percent),
            rep_id=rep.id,
            applicable_event_ids=applicable_event_ids,
            now_utc=now_utc,
        )
        logger.info("rep_discount_issued", rep_id=rep.id, org_id=org_id, discount_id=discount.id, code=discount.code)
        return discount

    async def resolve_for_order(
        self,
        *,
        org_id: str,
        code: str,
        event_id: str,
        subtotal: Decimal,
        now_utc: datetime,
    ) -> Discount:
        discount = await DiscountsRepo.get_by_code(self._store, org_id=org_id, code=code)
        if discount is None:
            raise DiscountNotFoundError(code)
        if discount.status != "active":
            raise CommerceValidationError("discount code is not active")
        if discount.starts_at is not None and now_utc < discount.starts_at:
            raise CommerceValidationError("discount code is not active yet")
        if discount.expires_at is not None and now_utc >= discount.expires_at:
            raise CommerceValidationError("discount code has expired")
        # Checked again with a capped increment when the order completes.
        if discount.max_uses is not None and discount.used_count >= discount.max_uses:
            raise CommerceValidationError("discount code has no uses left")
        if discount.applicable_event_ids and event_id not in discount.applicable_event_ids:
            raise CommerceValidationError("discount code does not apply to this event")
        if discount.min_order_amount is not None and subtotal < Decimal(discount.min_order_amount):
            raise CommerceValidationError("order total is below the discount minimum")
        return discount
