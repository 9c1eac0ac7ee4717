from ticketing.db.models.customers import Customer
from ticketing.db.models.discounts import Discount
from ticketing.db.models.order_items import OrderItem
from ticketing.db.models.orders import Order
from ticketing.db.models.reconciliation_runs import ReconciliationRun
from ticketing.db.models.rep_milestones import RepMilestone
from ticketing.db.models.rep_points_ledger import RepPointsLedgerEntry
from ticketing.db.models.rep_reward_claims import RepRewardClaim
from ticketing.db.models.rep_rewards import RepReward
from ticketing.db.models.reps import Rep
from ticketing.db.models.site_settings import SiteSetting
from ticketing.db.models.ticket_types import TicketType
from ticketing.db.models.tickets import Ticket

__all__ = [
    "Customer",
    "Discount",
    "Order",
    "OrderItem",
    "ReconciliationRun",
    "Rep",
    "RepMilestone",
    "RepPointsLedgerEntry",
    "RepReward",
    "RepRewardClaim",
    "SiteSetting",
    "Ticket",
    "TicketType",
]
