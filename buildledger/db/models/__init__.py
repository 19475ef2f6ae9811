from buildledger.db.models.change_order import ChangeOrder, ChangeOrderLineItem
from buildledger.db.models.estimate import Estimate, EstimateLineItem
from buildledger.db.models.expense import Expense, ExpenseSplit
from buildledger.db.models.payee import Payee
from buildledger.db.models.project import Project
from buildledger.db.models.quote import Quote, QuoteLineItem
from buildledger.db.models.revenue import ProjectRevenue, RevenueSplit

__all__ = [
    "ChangeOrder",
    "ChangeOrderLineItem",
    "Estimate",
    "EstimateLineItem",
    "Expense",
    "ExpenseSplit",
    "Payee",
    "Project",
    "ProjectRevenue",
    "Quote",
    "QuoteLineItem",
    "RevenueSplit",
]
