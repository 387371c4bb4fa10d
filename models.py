"""
Book & Move SQLAlchemy Models
Entities used by the job distribution and assignment engine.
"""

import sqlite3
import uuid
from datetime import datetime, timezone, timedelta

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import (
    Column, String, Float, Boolean, Integer, Text, DateTime, ForeignKey, JSON,
    CheckConstraint, Index, event
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import relationship, backref

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _set_sqlite_pragmas(dbapi_conn, connection_record):
    # ON DELETE CASCADE on job_alerts relies on this under SQLite
    if isinstance(dbapi_conn, sqlite3.Connection):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------
JOB_STATUSES = (
    "pending-assignment", "quote-requested", "quote-provided", "quote-accepted",
    "confirmed", "in-progress", "completed", "cancelled", "disputed",
)
ASSIGNABLE_JOB_STATUSES = ("pending-assignment", "confirmed")

PAYMENT_STATUSES = ("pending", "deposit-paid", "fully-paid", "refunded", "disputed")

ASSIGNMENT_STATUSES = (
    "unassigned", "alerted", "claimed", "assigned", "in-progress", "completed", "expired",
)
OPEN_ASSIGNMENT_STATUSES = ("unassigned", "alerted")

MOVE_TYPES = ("local", "long-distance", "commercial", "residential")

ALERT_STATUSES = (
    "sent", "viewed", "interested", "not-interested", "claimed", "completed", "expired",
)
LIVE_ALERT_STATUSES = ("sent", "viewed", "interested")

PROVIDER_STATUSES = ("pending", "approved", "suspended", "rejected")
SUBSCRIPTION_STATUSES = ("active", "inactive", "expired", "pending")

NOTIFICATION_TYPES = (
    "booking-confirmation", "job-alert", "quote-provided", "quote-accepted",
    "job-claimed", "job-completed", "payment-received", "subscription-expiring",
    "system-alert",
)
NOTIFICATION_PRIORITIES = ("low", "medium", "high", "urgent")

# Days a notification stays visible in the inbox, by type
NOTIFICATION_TTL_DAYS = {
    "booking-confirmation": 30,
    "job-alert": 1,
    "quote-provided": 7,
    "quote-accepted": 30,
    "job-claimed": 30,
    "job-completed": 30,
    "payment-received": 30,
    "subscription-expiring": 7,
    "system-alert": 7,
}

DEFAULT_DEPOSIT_CENTS = 9700
DEFAULT_ASSIGNMENT_WINDOW = timedelta(days=7)
DEFAULT_ALERT_TTL = timedelta(hours=24)


def _in_list(column, values):
    return "{} IN ({})".format(column, ", ".join("'{}'".format(v) for v in values))


def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    """Naive UTC timestamp. SQLite drops tzinfo on read, so all columns are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _default_assignment_expiry():
    return utcnow() + DEFAULT_ASSIGNMENT_WINDOW


def _default_alert_expiry():
    return utcnow() + DEFAULT_ALERT_TTL


def _iso(value):
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# User (customer)
# ---------------------------------------------------------------------------
class User(db.Model):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default="customer")  # customer, admin

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'admin')", name="ck_user_role"),
    )

    @property
    def full_name(self):
        return " ".join(p for p in (self.first_name, self.last_name) if p) or None

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Provider (mover / cleaner)
# ---------------------------------------------------------------------------
class Provider(db.Model):
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    business_name = Column(String(100), nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(30), nullable=True)

    address_street = Column(String(255), nullable=True)
    address_city = Column(String(100), nullable=True)
    address_state = Column(String(50), nullable=True)
    address_zip = Column(String(10), nullable=True, index=True)

    services = Column(JSON, nullable=True, default=list)

    hourly_rate = Column(Float, nullable=True)
    minimum_hours = Column(Float, default=2)
    travel_fee = Column(Float, default=0.0)

    rating_average = Column(Float, default=0.0)
    rating_count = Column(Integer, default=0)

    status = Column(String(20), nullable=False, default="pending")
    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)
    subscription_status = Column(String(20), nullable=False, default="pending")
    subscription_expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    service_areas = relationship(
        "ProviderServiceArea", back_populates="provider", lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", PROVIDER_STATUSES), name="ck_provider_status"),
        CheckConstraint(
            _in_list("subscription_status", SUBSCRIPTION_STATUSES),
            name="ck_provider_subscription_status",
        ),
        Index("ix_providers_eligibility", "status", "is_active", "subscription_status"),
    )

    @property
    def display_name(self):
        if self.business_name:
            return self.business_name
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Mover"

    def to_dict(self):
        return {
            "id": self.id,
            "business_name": self.business_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.address_street,
                "city": self.address_city,
                "state": self.address_state,
                "zip_code": self.address_zip,
            },
            "service_areas": [area.to_dict() for area in self.service_areas],
            "services": self.services or [],
            "pricing": {
                "hourly_rate": self.hourly_rate,
                "minimum_hours": self.minimum_hours,
                "travel_fee": self.travel_fee or 0.0,
            },
            "rating": {
                "average": self.rating_average or 0.0,
                "count": self.rating_count or 0,
            },
            "status": self.status,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "subscription_status": self.subscription_status,
            "subscription_expires_at": _iso(self.subscription_expires_at),
        }

    def to_contact_dict(self):
        """Identity, contact and pricing metadata handed out with match results."""
        return {
            "id": self.id,
            "business_name": self.business_name,
            "email": self.email,
            "phone": self.phone,
            "hourly_rate": self.hourly_rate,
            "minimum_hours": self.minimum_hours,
            "travel_fee": self.travel_fee or 0.0,
            "rating_average": self.rating_average or 0.0,
            "rating_count": self.rating_count or 0,
        }


class ProviderServiceArea(db.Model):
    __tablename__ = "provider_service_areas"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    zip_code = Column(String(10), nullable=True, index=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    max_distance = Column(Integer, default=50)  # miles, informational only

    provider = relationship("Provider", back_populates="service_areas")

    def to_dict(self):
        return {
            "zip_code": self.zip_code,
            "city": self.city,
            "state": self.state,
            "max_distance": self.max_distance,
        }


# ---------------------------------------------------------------------------
# Job (booking)
# ---------------------------------------------------------------------------
class Job(db.Model):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    customer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="SET NULL"), nullable=True, index=True)

    # Guest contact info (jobs booked without an account)
    guest_first_name = Column(String(100), nullable=True)
    guest_last_name = Column(String(100), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(30), nullable=True)

    pickup_street = Column(String(255), nullable=True)
    pickup_city = Column(String(100), nullable=True)
    pickup_state = Column(String(50), nullable=True)
    pickup_zip = Column(String(10), nullable=False)
    dropoff_street = Column(String(255), nullable=True)
    dropoff_city = Column(String(100), nullable=True)
    dropoff_state = Column(String(50), nullable=True)
    dropoff_zip = Column(String(10), nullable=False)

    move_date = Column(DateTime, nullable=False)
    move_time = Column(String(5), nullable=True)
    estimated_duration = Column(Float, nullable=True)  # hours

    move_type = Column(String(20), nullable=False, default="local")
    home_size = Column(String(30), nullable=True)
    services_requested = Column(JSON, nullable=True, default=list)

    quote_subtotal = Column(Float, nullable=True)
    deposit_amount_cents = Column(Integer, nullable=False, default=DEFAULT_DEPOSIT_CENTS)
    deposit_paid = Column(Boolean, nullable=False, default=False)
    deposit_paid_at = Column(DateTime, nullable=True)
    deposit_payment_intent_id = Column(String(255), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")

    status = Column(String(30), nullable=False, default="pending-assignment")

    assignment_status = Column(String(20), nullable=False, default="unassigned")
    alerts_sent = Column(Integer, nullable=False, default=0)
    last_alert_sent_at = Column(DateTime, nullable=True)
    # Claimed by each dispatch round; one round per job runs at a time
    last_dispatch_attempt_at = Column(DateTime, nullable=True)
    assignment_expires_at = Column(DateTime, nullable=True, default=_default_assignment_expiry)
    assigned_at = Column(DateTime, nullable=True)
    assigned_by_type = Column(String(10), nullable=True)
    assigned_by_id = Column(String(36), nullable=True)

    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)
    actual_duration = Column(Float, nullable=True)  # hours
    final_cost = Column(Float, nullable=True)
    completion_notes = Column(Text, nullable=True)

    long_distance_processed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    customer = relationship("User", foreign_keys=[customer_id], backref="jobs")
    provider = relationship("Provider", foreign_keys=[provider_id], backref="jobs")

    __table_args__ = (
        CheckConstraint(_in_list("status", JOB_STATUSES), name="ck_job_status"),
        CheckConstraint(_in_list("payment_status", PAYMENT_STATUSES), name="ck_job_payment_status"),
        CheckConstraint(_in_list("assignment_status", ASSIGNMENT_STATUSES), name="ck_job_assignment_status"),
        CheckConstraint(_in_list("move_type", MOVE_TYPES), name="ck_job_move_type"),
        CheckConstraint(
            "assigned_by_type IS NULL OR assigned_by_type IN ('system', 'admin')",
            name="ck_job_assigned_by_type",
        ),
        Index("ix_jobs_assignment_status", "assignment_status"),
        Index("ix_jobs_assignment_expiry", "assignment_expires_at"),
        Index("ix_jobs_pickup_zip", "pickup_zip"),
        Index("ix_jobs_dropoff_zip", "dropoff_zip"),
        Index("ix_jobs_move_date", "move_date"),
    )

    @property
    def is_long_distance(self):
        return self.move_type == "long-distance"

    @property
    def customer_name(self):
        if self.customer and self.customer.full_name:
            return self.customer.full_name
        guest = " ".join(p for p in (self.guest_first_name, self.guest_last_name) if p)
        return guest or "Customer"

    @property
    def customer_email(self):
        if self.customer and self.customer.email:
            return self.customer.email
        return self.guest_email

    @property
    def customer_phone(self):
        if self.customer and self.customer.phone:
            return self.customer.phone
        return self.guest_phone

    def is_dispatch_eligible(self, now=None, realert_after=timedelta(hours=2)):
        """Deposit paid, assignable, and either unassigned or a stale alerted job."""
        now = now or utcnow()
        if not self.deposit_paid or self.status not in ASSIGNABLE_JOB_STATUSES:
            return False
        if self.assignment_status == "unassigned":
            return True
        if self.assignment_status != "alerted":
            return False
        if self.last_alert_sent_at is None or self.last_alert_sent_at < now - realert_after:
            return True
        return self.assignment_expires_at is not None and self.assignment_expires_at < now

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "customer_info": {
                "first_name": self.guest_first_name,
                "last_name": self.guest_last_name,
                "email": self.guest_email,
                "phone": self.guest_phone,
            },
            "pickup_address": {
                "street": self.pickup_street,
                "city": self.pickup_city,
                "state": self.pickup_state,
                "zip_code": self.pickup_zip,
            },
            "dropoff_address": {
                "street": self.dropoff_street,
                "city": self.dropoff_city,
                "state": self.dropoff_state,
                "zip_code": self.dropoff_zip,
            },
            "move_date": _iso(self.move_date),
            "move_time": self.move_time,
            "estimated_duration": self.estimated_duration,
            "move_type": self.move_type,
            "home_size": self.home_size,
            "services_requested": self.services_requested or [],
            "quote_subtotal": self.quote_subtotal,
            "deposit": {
                "amount": self.deposit_amount_cents,
                "paid": self.deposit_paid,
                "paid_at": _iso(self.deposit_paid_at),
            },
            "payment_status": self.payment_status,
            "status": self.status,
            "job_assignment": {
                "status": self.assignment_status,
                "alerts_sent": self.alerts_sent or 0,
                "last_alert_sent_at": _iso(self.last_alert_sent_at),
                "last_dispatch_attempt_at": _iso(self.last_dispatch_attempt_at),
                "expires_at": _iso(self.assignment_expires_at),
                "assigned_at": _iso(self.assigned_at),
                "assigned_by_type": self.assigned_by_type,
            },
            "actual_start_time": _iso(self.actual_start_time),
            "actual_end_time": _iso(self.actual_end_time),
            "actual_duration": self.actual_duration,
            "final_cost": self.final_cost,
            "completion_notes": self.completion_notes,
            "long_distance_processed": self.long_distance_processed,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ---------------------------------------------------------------------------
# JobAlert (one dispatch of a job to one provider)
# ---------------------------------------------------------------------------
class JobAlert(db.Model):
    __tablename__ = "job_alerts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    provider_id = Column(String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="sent")

    response_interested = Column(Boolean, default=False)
    response_message = Column(Text, nullable=True)
    response_estimated_price = Column(Float, nullable=True)
    response_estimated_time = Column(Float, nullable=True)
    response_time = Column(DateTime, nullable=True)

    # Set once the notifier accepted the email; with EMAIL_ASYNC that means queued, not delivered
    email_sent = Column(Boolean, default=False)
    email_sent_at = Column(DateTime, nullable=True)
    sms_sent = Column(Boolean, default=False)
    sms_sent_at = Column(DateTime, nullable=True)
    push_sent = Column(Boolean, default=False)
    push_sent_at = Column(DateTime, nullable=True)

    sent_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False, default=_default_alert_expiry)
    viewed_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    job = relationship("Job", backref=backref("alerts", passive_deletes=True))
    provider = relationship("Provider", backref="alerts")

    __table_args__ = (
        CheckConstraint(_in_list("status", ALERT_STATUSES), name="ck_job_alert_status"),
        Index("ix_job_alerts_provider_status", "provider_id", "status"),
        Index("ix_job_alerts_job_status", "job_id", "status"),
        Index("ix_job_alerts_expires_at", "expires_at"),
    )

    @property
    def is_expired(self):
        return utcnow() > self.expires_at

    def to_dict(self, include_job=False):
        data = {
            "id": self.id,
            "job_id": self.job_id,
            "provider_id": self.provider_id,
            "status": self.status,
            "response": {
                "interested": bool(self.response_interested),
                "message": self.response_message,
                "estimated_price": self.response_estimated_price,
                "estimated_time": self.response_estimated_time,
                "response_time": _iso(self.response_time),
            },
            "notifications": {
                "email_sent": bool(self.email_sent),
                "email_sent_at": _iso(self.email_sent_at),
            },
            "sent_at": _iso(self.sent_at),
            "expires_at": _iso(self.expires_at),
            "viewed_at": _iso(self.viewed_at),
            "responded_at": _iso(self.responded_at),
            "completed_at": _iso(self.completed_at),
        }
        if include_job:
            data["job"] = self.job.to_dict() if self.job else None
        return data


# ---------------------------------------------------------------------------
# Notification (in-app inbox entry)
# ---------------------------------------------------------------------------
class Notification(db.Model):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    recipient_id = Column(String(36), nullable=False)
    recipient_type = Column(String(10), nullable=False)  # "user" or "provider"
    type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    related_id = Column(String(36), nullable=True)
    related_model = Column(String(20), nullable=True)

    email_sent = Column(Boolean, default=False)
    email_sent_at = Column(DateTime, nullable=True)
    sms_sent = Column(Boolean, default=False)
    sms_sent_at = Column(DateTime, nullable=True)
    push_sent = Column(Boolean, default=False)
    push_sent_at = Column(DateTime, nullable=True)

    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    expires_at = Column(DateTime, nullable=True)
    data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("recipient_type IN ('user', 'provider')", name="ck_notification_recipient_type"),
        CheckConstraint(_in_list("type", NOTIFICATION_TYPES), name="ck_notification_type"),
        CheckConstraint(_in_list("priority", NOTIFICATION_PRIORITIES), name="ck_notification_priority"),
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        Index("ix_notifications_recipient_type", "recipient_id", "type"),
        Index("ix_notifications_expires_at", "expires_at"),
    )

    @classmethod
    def create_notification(cls, recipient_id, recipient_type, notification_type, title,
                            message, related_id=None, related_model="Job",
                            priority="medium", data=None):
        """Build and add a notification to the session. Caller commits."""
        ttl_days = NOTIFICATION_TTL_DAYS.get(notification_type, 7)
        notification = cls(
            id=generate_uuid(),
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            type=notification_type,
            title=title,
            message=message,
            related_id=related_id,
            related_model=related_model if related_id else None,
            priority=priority,
            expires_at=utcnow() + timedelta(days=ttl_days),
            data=data,
        )
        db.session.add(notification)
        return notification

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "recipient_type": self.recipient_type,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_id": self.related_id,
            "related_model": self.related_model,
            "email_sent": bool(self.email_sent),
            "sms_sent": bool(self.sms_sent),
            "push_sent": bool(self.push_sent),
            "is_read": bool(self.is_read),
            "read_at": _iso(self.read_at),
            "priority": self.priority,
            "expires_at": _iso(self.expires_at),
            "data": self.data,
            "created_at": _iso(self.created_at),
        }
