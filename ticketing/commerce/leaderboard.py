from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from ticketing.db.models.reps import Rep
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.store import RecordStore

DEFAULT_LEADERBOARD_LIMIT = 50
MAX_LEADERBOARD_LIMIT = 200


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    position: int
    rep_id: str
    display_name: str
    total_revenue: Decimal
    total_sales: int
    level: int


def _display_name(rep: Rep) -> str:
    if rep.display_name:
        return rep.display_name
    return f"{rep.first_name} {rep.last_name[:1]}".strip()


def rank(reps: Iterable[Rep]) -> list[LeaderboardEntry]:
    """Active reps by revenue, highest first; equal revenue orders by rep id ascending."""
    active = [rep for rep in reps if rep.status == "active"]
    active.sort(key=lambda rep: (-Decimal(rep.total_revenue), rep.id))
    return [
        LeaderboardEntry(
            position=index,
            rep_id=rep.id,
            display_name=_display_name(rep),
            total_revenue=Decimal(rep.total_revenue),
            total_sales=rep.total_sales,
            level=rep.level,
        )
        for index, rep in enumerate(active, start=1)
    ]


def position_of(rep_id: str, ranked: Sequence[LeaderboardEntry]) -> int | None:
    for index, entry in enumerate(ranked, start=1):
        if entry.rep_id == rep_id:
            return index
    return None


class LeaderboardService:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def full_ranking(self, *, org_id: str) -> list[LeaderboardEntry]:
        return rank(await RepsRepo.list_for_org(self._store, org_id=org_id, status="active"))

    async def rank(self, *, org_id: str, limit: int = DEFAULT_LEADERBOARD_LIMIT) -> list[LeaderboardEntry]:
        ranked = await self.full_ranking(org_id=org_id)
        return ranked[: max(1, min(MAX_LEADERBOARD_LIMIT, limit))]
