from ticketing.db.repo.customers_repo import CustomersRepo
from ticketing.db.repo.discounts_repo import DiscountsRepo
from ticketing.db.repo.order_items_repo import OrderItemsRepo
from ticketing.db.repo.orders_repo import OrdersRepo
from ticketing.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from ticketing.db.repo.rep_points_ledger_repo import RepPointsLedgerRepo
from ticketing.db.repo.rep_reward_claims_repo import RepRewardClaimsRepo
from ticketing.db.repo.rep_rewards_repo import RepMilestonesRepo, RepRewardsRepo
from ticketing.db.repo.reps_repo import RepsRepo
from ticketing.db.repo.site_settings_repo import SiteSettingsRepo
from ticketing.db.repo.ticket_types_repo import TicketTypesRepo
from ticketing.db.repo.tickets_repo import TicketsRepo

__all__ = [
    "CustomersRepo",
    "DiscountsRepo",
    "OrderItemsRepo",
    "OrdersRepo",
    "ReconciliationRunsRepo",
    "RepMilestonesRepo",
    "RepPointsLedgerRepo",
    "RepRewardClaimsRepo",
    "RepRewardsRepo",
    "RepsRepo",
    "SiteSettingsRepo",
    "TicketTypesRepo",
    "TicketsRepo",
]
