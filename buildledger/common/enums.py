import enum


class ProjectStatus(str, enum.Enum):
    ESTIMATING = "estimating"
    QUOTED = "quoted"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class EstimateStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class LineItemCategory(str, enum.Enum):
    LABOR_INTERNAL = "labor_internal"
    SUBCONTRACTORS = "subcontractors"
    MATERIALS = "materials"
    EQUIPMENT = "equipment"
    PERMITS = "permits"
    MANAGEMENT = "management"
    OTHER = "other"


class QuoteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ChangeOrderStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PayeeType(str, enum.Enum):
    EMPLOYEE = "employee"
    VENDOR = "vendor"
    SUBCONTRACTOR = "subcontractor"


class LedgerTable(str, enum.Enum):
    ESTIMATES = "estimates"
    ESTIMATE_LINE_ITEMS = "estimate_line_items"
    QUOTES = "quotes"
    QUOTE_LINE_ITEMS = "quote_line_items"
    CHANGE_ORDERS = "change_orders"
    CHANGE_ORDER_LINE_ITEMS = "change_order_line_items"
    EXPENSES = "expenses"
    EXPENSE_SPLITS = "expense_splits"
    PROJECT_REVENUES = "project_revenues"
    REVENUE_SPLITS = "revenue_splits"
