from datetime import datetime, date, time
from typing import Optional, List

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Time,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from .enums import (
    AssignmentStatus,
    Currency,
    EmploymentRole,
    EmploymentStatus,
    OfferStatus,
    OrderCreator,
    OrderServiceStatus,
    OrderStatus,
    PaymentMethod,
    UserRole,
)


def int_pk() -> Mapped[int]:
    return mapped_column(Integer, primary_key=True, autoincrement=True)


def enum_type(enum_cls) -> SAEnum:
    # Stored as VARCHAR holding the enum value; unknown values are rejected on write
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def partial_where(clause: str) -> dict:
    return {"sqlite_where": text(clause), "postgresql_where": text(clause)}


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(enum_type(UserRole), nullable=False, default=UserRole.client)
    company_id: Mapped[Optional[int]] = mapped_column(ForeignKey("companies.id", ondelete="SET NULL"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    company = relationship("Company")


class Service(Base):
    """Catalog of service lines a customer can request (moving, cleaning, ...)"""
    __tablename__ = "services"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Addition(Base):
    """Catalog of add-ons attachable to a service line (piano, packing boxes, ...)"""
    __tablename__ = "additions"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_price: Mapped[Optional[float]] = mapped_column(Float)


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = int_pk()
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    location_type: Mapped[Optional[str]] = mapped_column(String(50))  # apartment|house|office|warehouse|building
    floor: Mapped[Optional[int]] = mapped_column(Integer)
    has_elevator: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class Order(Base):
    """Top-level customer request. status is derived from the service lines."""
    __tablename__ = "orders"

    id: Mapped[int] = int_pk()
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id"), nullable=False)
    destination_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("locations.id"))
    preferred_date: Mapped[Optional[date]] = mapped_column(Date)
    preferred_time: Mapped[Optional[time]] = mapped_column(Time(timezone=False))
    number_of_rooms: Mapped[float] = mapped_column(Float, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[OrderCreator] = mapped_column(enum_type(OrderCreator), nullable=False)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    status: Mapped[OrderStatus] = mapped_column(enum_type(OrderStatus), nullable=False, default=OrderStatus.pending, index=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    client = relationship("User", foreign_keys=[client_id])
    location = relationship("Location", foreign_keys=[location_id])
    destination_location = relationship("Location", foreign_keys=[destination_location_id])
    services: Mapped[List["OrderService"]] = relationship(
        "OrderService", back_populates="order", order_by="OrderService.id", cascade="all, delete-orphan"
    )


class OrderService(Base):
    """One requested service line within an order, priced and staffed independently"""
    __tablename__ = "order_services"

    id: Mapped[int] = int_pk()
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"), nullable=False)
    company_id: Mapped[Optional[int]] = mapped_column(ForeignKey("companies.id", ondelete="SET NULL"), index=True)
    status: Mapped[OrderServiceStatus] = mapped_column(
        enum_type(OrderServiceStatus), nullable=False, default=OrderServiceStatus.pending
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order = relationship("Order", back_populates="services")
    service = relationship("Service")
    company = relationship("Company")
    offers: Mapped[List["Offer"]] = relationship("Offer", back_populates="order_service", order_by="Offer.version")
    additions: Mapped[List["OrderServiceAddition"]] = relationship(
        "OrderServiceAddition", back_populates="order_service", cascade="all, delete-orphan"
    )
    report = relationship("Report", back_populates="order_service", uselist=False)


class OrderServiceAddition(Base):
    __tablename__ = "order_service_additions"

    id: Mapped[int] = int_pk()
    order_service_id: Mapped[int] = mapped_column(ForeignKey("order_services.id", ondelete="CASCADE"), nullable=False, index=True)
    addition_id: Mapped[int] = mapped_column(ForeignKey("additions.id"), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[Optional[float]] = mapped_column(Float)  # Internal pricing only
    price: Mapped[Optional[float]] = mapped_column(Float)  # Internal pricing only

    order_service = relationship("OrderService", back_populates="additions")
    addition = relationship("Addition")


class Offer(Base):
    """Versioned price proposal for one service line. Superseded versions are never edited."""
    __tablename__ = "offers"

    id: Mapped[int] = int_pk()
    order_service_id: Mapped[int] = mapped_column(ForeignKey("order_services.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id: Mapped[Optional[int]] = mapped_column(ForeignKey("companies.id", ondelete="SET NULL"))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Currency] = mapped_column(enum_type(Currency), nullable=False, default=Currency.CHF)
    min_hours: Mapped[float] = mapped_column(Float, nullable=False)
    max_hours: Mapped[float] = mapped_column(Float, nullable=False)
    # Proposed schedule; left unannotated so the names do not shadow datetime.date/time
    date = mapped_column(Date, nullable=True)
    time = mapped_column(Time(timezone=False), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[OfferStatus] = mapped_column(enum_type(OfferStatus), nullable=False, default=OfferStatus.pending)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order_service = relationship("OrderService", back_populates="offers")
    assignments: Mapped[List["Assignment"]] = relationship("Assignment", back_populates="offer", order_by="Assignment.id")

    __table_args__ = (
        UniqueConstraint("order_service_id", "version", name="uq_offer_version"),
        Index("uq_offers_single_pending", "order_service_id", unique=True, **partial_where("status = 'pending'")),
    )


class Assignment(Base):
    """Binds one employee to one accepted offer; cancelled rows stay for audit"""
    __tablename__ = "assignments"

    id: Mapped[int] = int_pk()
    offer_id: Mapped[int] = mapped_column(ForeignKey("offers.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    is_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[AssignmentStatus] = mapped_column(
        enum_type(AssignmentStatus), nullable=False, default=AssignmentStatus.active
    )
    assigned_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    offer = relationship("Offer", back_populates="assignments")
    employee = relationship("User", foreign_keys=[employee_id])

    __table_args__ = (
        Index("uq_assignments_active_employee", "offer_id", "employee_id", unique=True, **partial_where("status = 'active'")),
        Index("uq_assignments_single_leader", "offer_id", unique=True, **partial_where("status = 'active' AND is_leader")),
    )


class Report(Base):
    """Leader's post-job accounting for one service line (upserted, never duplicated)"""
    __tablename__ = "reports"

    id: Mapped[int] = int_pk()
    order_service_id: Mapped[int] = mapped_column(
        ForeignKey("order_services.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    submitted_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    num_of_hours: Mapped[float] = mapped_column(Float, nullable=False)
    paid_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    payment_method: Mapped[PaymentMethod] = mapped_column(enum_type(PaymentMethod), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order_service = relationship("OrderService", back_populates="report")
    employee_hours: Mapped[List["ReportEmployee"]] = relationship(
        "ReportEmployee", back_populates="report", cascade="all, delete-orphan", order_by="ReportEmployee.id"
    )
    transactions: Mapped[List["ReportTransaction"]] = relationship(
        "ReportTransaction", back_populates="report", cascade="all, delete-orphan", order_by="ReportTransaction.id"
    )


class ReportEmployee(Base):
    __tablename__ = "report_employees"

    id: Mapped[int] = int_pk()
    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    hours: Mapped[float] = mapped_column(Float, nullable=False)

    report = relationship("Report", back_populates="employee_hours")


class ReportTransaction(Base):
    """Expense or payment line attached to a report"""
    __tablename__ = "report_transactions"

    id: Mapped[int] = int_pk()
    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(enum_type(PaymentMethod), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    report = relationship("Report", back_populates="transactions")


class Employment(Base):
    """Standing relationship between a worker/driver and a company"""
    __tablename__ = "employments"

    id: Mapped[int] = int_pk()
    employee_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    role: Mapped[EmploymentRole] = mapped_column(enum_type(EmploymentRole), nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    currency: Mapped[Currency] = mapped_column(enum_type(Currency), nullable=False, default=Currency.CHF)
    status: Mapped[EmploymentStatus] = mapped_column(
        enum_type(EmploymentStatus), nullable=False, default=EmploymentStatus.pending
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    employee = relationship("User", foreign_keys=[employee_id])
    company = relationship("Company")
    rate_changes: Mapped[List["EmploymentRateChange"]] = relationship(
        "EmploymentRateChange", back_populates="employment", order_by="EmploymentRateChange.id.desc()"
    )

    __table_args__ = (
        Index(
            "uq_employments_open",
            "employee_id",
            "company_id",
            unique=True,
            **partial_where("status IN ('pending', 'active')"),
        ),
    )


class EmploymentRateChange(Base):
    """Append-only hourly rate history of an employment"""
    __tablename__ = "employment_rate_changes"

    id: Mapped[int] = int_pk()
    employment_id: Mapped[int] = mapped_column(ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, index=True)
    old_rate: Mapped[Optional[float]] = mapped_column(Float)
    new_rate: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Currency] = mapped_column(enum_type(Currency), nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    employment = relationship("Employment", back_populates="rate_changes")


class AuditLog(Base):
    """Append-only audit log for all workflow transitions"""
    __tablename__ = "audit_logs"

    id: Mapped[int] = int_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # order|order_service|offer|assignment|report|employment
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|SEND|ACCEPT|REJECT|CANCEL|...
    actor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)  # {order_id, order_service_id, offer_id, ...}
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )


class Notification(Base):
    """Workflow events queued for push/email delivery by an external worker"""
    __tablename__ = "notifications"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # push|email
    event: Mapped[str] = mapped_column(String(100), nullable=False)  # offer_sent|leader_changed|...
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed|delivered
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index('idx_notifications_user_status', 'user_id', 'status'),
        Index('idx_notifications_created', 'created_at'),
    )


class UserNotificationPreference(Base):
    """User notification preferences"""
    __tablename__ = "user_notification_preferences"

    id: Mapped[int] = int_pk()
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    push: Mapped[bool] = mapped_column(Boolean, default=True)
    email: Mapped[bool] = mapped_column(Boolean, default=True)
    quiet_hours: Mapped[Optional[dict]] = mapped_column(JSON)  # {start: "HH:MM", end: "HH:MM", timezone: "Europe/Zurich"}
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
