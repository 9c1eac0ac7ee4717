from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ticketing.commerce.errors import (
    CommerceValidationError,
    DuplicateAwardError,
    InsufficientPointsError,
    RepNotFoundError,
)
from ticketing.commerce.identifiers.codes import generate_correlation_id
from ticketing.commerce.program_settings import ProgramSettingsStore, calculate_level
from ticketing.db.errors import StoreError, UniqueViolationError
from ticketing.db.models.rep_points_ledger import RepPointsLedgerEntry
from ticketing.db.models.reps import Rep
from ticketing.db.repo.rep_points_ledger_repo import RepPointsLedgerRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.store import RecordStore
from ticketing.services.alerts import send_ops_alert

logger = structlog.get_logger(__name__)

SOURCE_TYPES = frozenset({"sale", "manual", "quest", "redemption", "refund"})
HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 200
DESCRIPTION_MAX_LENGTH = 500
SETTLE_GRACE = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class BalanceCheck:
    rep_id: str
    cached_balance: int
    ledger_balance: int
    healed: bool
    cached_currency: int = 0
    ledger_currency: int = 0
    deferred: bool = False

    @property
    def drift(self) -> int:
        return self.cached_balance - self.ledger_balance

    @property
    def currency_drift(self) -> int:
        return self.cached_currency - self.ledger_currency


def clamp_history_window(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(HISTORY_MAX_LIMIT, limit)), max(0, offset)


def validate_award(*, points: int, source_type: str, description: str, currency: int = 0) -> str:
    for name, value in (("points", points), ("currency", currency)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise CommerceValidationError(f"{name} must be an integer")
    if points == 0 and currency == 0:
        raise CommerceValidationError("points must be non-zero")
    if source_type not in SOURCE_TYPES:
        raise CommerceValidationError(f"unknown source_type: {source_type}")
    cleaned = description.strip() if isinstance(description, str) else ""
    if not cleaned:
        raise CommerceValidationError("description is required")
    if len(cleaned) > DESCRIPTION_MAX_LENGTH:
        raise CommerceValidationError("description is too long")
    return cleaned


class LedgerStore:
    """Append-only points and currency ledger.

    ``reps.points_balance`` and ``reps.currency_balance`` cache its sums. Every write
    appends the entry first, then increments the cache, then marks the entry applied.
    An entry that is not applied yet is in flight, and :meth:`rebalance` leaves the
    cache alone while any in-flight entry is younger than the settle grace.
    """

    def __init__(self, store: RecordStore, *, settle_grace: timedelta = SETTLE_GRACE) -> None:
        self._store = store
        self._settle_grace = settle_grace

    async def _get_rep(self, rep_id: str, org_id: str) -> Rep:
        rep = await RepsRepo.get_by_id(self._store, rep_id, org_id=org_id)
        if rep is None:
            raise RepNotFoundError(rep_id)
        return rep

    async def _append(
        self,
        *,
        rep_id: str,
        org_id: str,
        points: int,
        source_type: str,
        source_ref: str | None,
        description: str,
        created_by: str | None,
        now_utc: datetime,
        currency: int = 0,
    ) -> RepPointsLedgerEntry:
        try:
            return await RepPointsLedgerRepo.create(
                self._store,
                correlation_id=generate_correlation_id(),
                org_id=org_id,
                rep_id=rep_id,
                points=points,
                currency=currency,
                source_type=source_type,
                source_ref=source_ref,
                description=description,
                created_by=created_by,
                now_utc=now_utc,
            )
        except UniqueViolationError as exc:
            raise DuplicateAwardError(f"{source_type}:{source_ref}") from exc

    async def _mark_applied(self, *entries: RepPointsLedgerEntry) -> None:
        try:
            await RepPointsLedgerRepo.mark_applied(self._store, entry_ids=[entry.id for entry in entries])
        except (StoreError, SQLAlchemyError):
            # The entry stays in flight until the grace passes; the cache is already right.
            logger.warning(
                "points_entry_mark_applied_failed",
                correlation_ids=[entry.correlation_id for entry in entries],
                exc_info=True,
            )

    async def _refresh_level(self, *, rep_id: str, org_id: str) -> int:
        rep = await self._get_rep(rep_id, org_id)
        settings = await ProgramSettingsStore.load(self._store, org_id=org_id)
        level = calculate_level(rep.points_balance, settings.level_thresholds)
        if level != rep.level:
            await RepsRepo.set_level_if_balance(
                self._store,
                rep_id=rep_id,
                level=level,
                points_balance=rep.points_balance,
            )
            logger.info("rep_level_changed", rep_id=rep_id, old_level=rep.level, new_level=level)
        return rep.points_balance

    async def _drift_fallback(self, *, entry: RepPointsLedgerEntry) -> int:
        logger.exception(
            "points_balance_update_failed",
            rep_id=entry.rep_id,
            org_id=entry.org_id,
            correlation_id=entry.correlation_id,
            points=entry.points,
            currency=entry.currency,
        )
        await send_ops_alert(
            event="points_balance_update_failed",
            payload={
                "rep_id": entry.rep_id,
                "org_id": entry.org_id,
                "correlation_id": entry.correlation_id,
                "points": entry.points,
                "currency": entry.currency,
            },
        )
        return await self.ledger_balance(entry.rep_id)

    async def award(
        self,
        *,
        rep_id: str,
        org_id: str,
        points: int,
        source_type: str,
        description: str,
        now_utc: datetime,
        source_ref: str | None = None,
        created_by: str | None = None,
        currency: int = 0,
    ) -> int:
        cleaned = validate_award(points=points, source_type=source_type, description=description, currency=currency)
        await self._get_rep(rep_id, org_id)

        if source_ref is not None:
            existing = await RepPointsLedgerRepo.get_by_source(
                self._store,
                rep_id=rep_id,
                source_type=source_type,
                source_ref=source_ref,
            )
            if existing is not None:
                raise DuplicateAwardError(f"{source_type}:{source_ref}")

        entry = await self._append(
            rep_id=rep_id,
            org_id=org_id,
            points=points,
            currency=currency,
            source_type=source_type,
            source_ref=source_ref,
            description=cleaned,
            created_by=created_by,
            now_utc=now_utc,
        )

        try:
            await RepsRepo.add_points(self._store, rep_id=rep_id, points=points, currency=currency)
        except (StoreError, SQLAlchemyError):
            return await self._drift_fallback(entry=entry)
        await self._mark_applied(entry)

        balance = await self._refresh_level(rep_id=rep_id, org_id=org_id)
        logger.info(
            "points_awarded",
            rep_id=rep_id,
            org_id=org_id,
            points=points,
            currency=currency,
            source_type=source_type,
            source_ref=source_ref,
            correlation_id=entry.correlation_id,
            new_balance=balance,
        )
        return balance

    async def debit(
        self,
        *,
        rep_id: str,
        org_id: str,
        points: int,
        description: str,
        source_ref: str,
        now_utc: datetime,
    ) -> int:
        """Spends ``points``; the balance guard keeps it from going below zero."""
        if points <= 0:
            raise CommerceValidationError("debit amount must be positive")

        entry = await self._append(
            rep_id=rep_id,
            org_id=org_id,
            points=-points,
            source_type="redemption",
            source_ref=source_ref,
            description=description,
            created_by=None,
            now_utc=now_utc,
        )

        try:
            spent = await RepsRepo.spend_points(self._store, rep_id=rep_id, points=points)
        except (StoreError, SQLAlchemyError):
            # Unknown whether the spend landed, so both entries stay in flight for the heal.
            await self._compensate(entry=entry, now_utc=now_utc, reason="balance_update_failed")
            raise

        if spent == 0:
            reversal = await self._compensate(entry=entry, now_utc=now_utc, reason="insufficient_points")
            await self._mark_applied(entry, reversal)
            raise InsufficientPointsError(rep_id)
        await self._mark_applied(entry)

        balance = await self._refresh_level(rep_id=rep_id, org_id=org_id)
        logger.info(
            "points_spent",
            rep_id=rep_id,
            org_id=org_id,
            points=points,
            source_ref=source_ref,
            correlation_id=entry.correlation_id,
            new_balance=balance,
        )
        return balance

    async def _compensate(
        self,
        *,
        entry: RepPointsLedgerEntry,
        now_utc: datetime,
        reason: str,
    ) -> RepPointsLedgerEntry:
        reversal = await self._append(
            rep_id=entry.rep_id,
            org_id=entry.org_id,
            points=-entry.points,
            currency=-entry.currency,
            source_type=entry.source_type,
            source_ref=f"{entry.source_ref}:reversal",
            description=f"Reversal of {entry.correlation_id} ({reason})",
            created_by=None,
            now_utc=now_utc,
        )
        logger.warning(
            "points_debit_reversed",
            rep_id=entry.rep_id,
            correlation_id=entry.correlation_id,
            reason=reason,
        )
        return reversal

    async def history(
        self,
        *,
        rep_id: str,
        org_id: str,
        limit: int = HISTORY_DEFAULT_LIMIT,
        offset: int = 0,
    ) -> list[RepPointsLedgerEntry]:
        await self._get_rep(rep_id, org_id)
        resolved_limit, resolved_offset = clamp_history_window(limit, offset)
        return await RepPointsLedgerRepo.list_for_rep(
            self._store,
            rep_id=rep_id,
            org_id=org_id,
            limit=resolved_limit,
            offset=resolved_offset,
        )

    async def ledger_balance(self, rep_id: str) -> int:
        return await RepPointsLedgerRepo.sum_points(self._store, rep_id=rep_id)

    async def ledger_currency(self, rep_id: str) -> int:
        return await RepPointsLedgerRepo.sum_currency(self._store, rep_id=rep_id)

    async def rebalance(self, *, rep_id: str, org_id: str, now_utc: datetime | None = None) -> BalanceCheck:
        """Overwrites the cached balances with the ledger sums once in-flight entries settle."""
        rep = await self._get_rep(rep_id, org_id)
        check = BalanceCheck(
            rep_id=rep_id,
            cached_balance=rep.points_balance,
            ledger_balance=await self.ledger_balance(rep_id),
            cached_currency=rep.currency_balance,
            ledger_currency=await self.ledger_currency(rep_id),
            healed=False,
        )

        # Counted after the sums: an entry they include is either still in flight or already cached.
        since = (now_utc or datetime.now(timezone.utc)) - self._settle_grace
        in_flight = await RepPointsLedgerRepo.count_unapplied_since(self._store, rep_id=rep_id, since=since)
        if in_flight:
            logger.info("points_balance_heal_deferred", rep_id=rep_id, org_id=org_id, in_flight=in_flight)
            return replace(check, deferred=True)

        if check.drift == 0 and check.currency_drift == 0:
            await self._refresh_level(rep_id=rep_id, org_id=org_id)
            return check

        settings = await ProgramSettingsStore.load(self._store, org_id=org_id)
        updated = await RepsRepo.overwrite_balance(
            self._store,
            rep_id=rep_id,
            expected_balance=rep.points_balance,
            expected_currency=rep.currency_balance,
            points_balance=check.ledger_balance,
            currency_balance=check.ledger_currency,
            level=calculate_level(check.ledger_balance, settings.level_thresholds),
        )
        logger.warning(
            "points_balance_drift_detected",
            rep_id=rep_id,
            org_id=org_id,
            cached_balance=check.cached_balance,
            ledger_balance=check.ledger_balance,
            cached_currency=check.cached_currency,
            ledger_currency=check.ledger_currency,
            healed=updated == 1,
        )
        return replace(check, healed=updated == 1)
