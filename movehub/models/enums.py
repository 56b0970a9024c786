"""Closed status and role enumerations for the fulfillment workflow."""
import enum


class UserRole(str, enum.Enum):
    super_admin = "super_admin"
    site_admin = "site_admin"
    company_admin = "company_admin"
    company_secretary = "company_secretary"
    driver = "driver"
    worker = "worker"
    client = "client"


class OrderCreator(str, enum.Enum):
    customer = "customer"
    site_admin = "site_admin"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    assigned = "assigned"
    offer_sent = "offer_sent"
    offer_accepted = "offer_accepted"
    offer_rejected = "offer_rejected"
    in_progress = "in_progress"
    completed = "completed"
    partially_done = "partially_done"
    cancelled = "cancelled"


class OrderServiceStatus(str, enum.Enum):
    pending = "pending"
    assigned = "assigned"
    offer_sent = "offer_sent"
    offer_accepted = "offer_accepted"
    offer_rejected = "offer_rejected"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class OfferStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    cancelled = "cancelled"


class AssignmentStatus(str, enum.Enum):
    active = "active"
    cancelled = "cancelled"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    twint = "twint"


class EmploymentRole(str, enum.Enum):
    worker = "worker"
    driver = "driver"
    company_secretary = "company_secretary"


class EmploymentStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    terminated = "terminated"
    cancelled = "cancelled"


class Currency(str, enum.Enum):
    CHF = "CHF"
    EUR = "EUR"
    USD = "USD"


# Service lines that can still receive a new offer version
OFFERABLE_SERVICE_STATUSES = frozenset({
    OrderServiceStatus.pending,
    OrderServiceStatus.assigned,
    OrderServiceStatus.offer_rejected,
})

# Service lines on which the leader may file or update a report
REPORTABLE_SERVICE_STATUSES = frozenset({
    OrderServiceStatus.offer_accepted,
    OrderServiceStatus.in_progress,
})

TERMINAL_SERVICE_STATUSES = frozenset({
    OrderServiceStatus.completed,
    OrderServiceStatus.cancelled,
})
