"""
Pytest configuration and fixtures for the Book & Move job distribution tests
"""
import os
import uuid
from datetime import timedelta

import pytest

os.environ.setdefault("FLASK_ENV", "testing")

from server import create_app
from models import (
    db as _db, User, Provider, ProviderServiceArea, Job, JobAlert, Notification, utcnow,
)
from auth import generate_token


class RecordingNotifier:
    """Collects JobEvents instead of sending email."""

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]

    def of_kind(self, kind):
        return [e for e in self.events if e.kind == kind]


class FailingNotifier(RecordingNotifier):
    """Records every event, then raises for the kinds listed (all when empty)."""

    def __init__(self, fail_kinds=None):
        super().__init__()
        self.fail_kinds = set(fail_kinds or ())

    def notify(self, event):
        self.events.append(event)
        if not self.fail_kinds or event.kind in self.fail_kinds:
            raise RuntimeError("email provider unavailable")


@pytest.fixture
def app():
    """Create application instance with a fresh in-memory database"""
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(autouse=True)
def notifier(request):
    """Replace the email notifier with a recorder for every app-backed test."""
    if "app" not in request.fixturenames:
        return None
    app = request.getfixturevalue("app")
    recorder = RecordingNotifier()
    app.extensions["notifier"] = recorder
    return recorder


def _unique_email(prefix):
    return "{}-{}@example.com".format(prefix, uuid.uuid4().hex[:8])


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
@pytest.fixture
def customer_factory(db):
    def _create_customer(**kwargs):
        defaults = {
            "first_name": "Casey",
            "last_name": "Customer",
            "email": _unique_email("customer"),
            "phone": "555-0100",
            "role": "customer",
        }
        defaults.update(kwargs)
        user = User(**defaults)
        db.session.add(user)
        db.session.commit()
        return user
    return _create_customer


@pytest.fixture
def provider_factory(db):
    def _create_provider(service_zips=("10001",), service_cities=(), **kwargs):
        defaults = {
            "business_name": "Reliable Movers",
            "first_name": "Morgan",
            "last_name": "Mover",
            "email": _unique_email("mover"),
            "phone": "555-0200",
            "address_city": "Newark",
            "address_state": "NJ",
            "address_zip": "07102",
            "hourly_rate": 120.0,
            "rating_average": 4.5,
            "rating_count": 10,
            "status": "approved",
            "is_active": True,
            "is_verified": True,
            "subscription_status": "active",
            "subscription_expires_at": utcnow() + timedelta(days=30),
        }
        defaults.update(kwargs)
        provider = Provider(**defaults)
        for zip_code in service_zips:
            provider.service_areas.append(
                ProviderServiceArea(zip_code=zip_code)
            )
        for city, state in service_cities:
            provider.service_areas.append(ProviderServiceArea(city=city, state=state))
        db.session.add(provider)
        db.session.commit()
        return provider
    return _create_provider


@pytest.fixture
def job_factory(db):
    def _create_job(**kwargs):
        defaults = {
            "pickup_street": "1 Main St",
            "pickup_city": "New York",
            "pickup_state": "NY",
            "pickup_zip": "10001",
            "dropoff_street": "9 Elm St",
            "dropoff_city": "Brooklyn",
            "dropoff_state": "NY",
            "dropoff_zip": "11201",
            "move_date": utcnow() + timedelta(days=7),
            "move_time": "09:00",
            "estimated_duration": 4.0,
            "move_type": "local",
            "home_size": "2-bedroom",
            "services_requested": ["packing", "loading"],
            "quote_subtotal": 600.0,
            "deposit_paid": True,
            "payment_status": "deposit-paid",
            "status": "pending-assignment",
        }
        defaults.update(kwargs)
        job = Job(**defaults)
        db.session.add(job)
        db.session.commit()
        return job
    return _create_job


@pytest.fixture
def alert_factory(db):
    def _create_alert(job, provider, **kwargs):
        now = utcnow()
        defaults = {
            "job_id": job.id,
            "provider_id": provider.id,
            "status": "sent",
            "sent_at": now,
            "expires_at": now + timedelta(hours=24),
        }
        defaults.update(kwargs)
        alert = JobAlert(**defaults)
        db.session.add(alert)
        db.session.commit()
        return alert
    return _create_alert


@pytest.fixture
def notification_factory(db):
    def _create_notification(recipient_id, recipient_type="user", **kwargs):
        defaults = {
            "recipient_id": recipient_id,
            "recipient_type": recipient_type,
            "type": "system-alert",
            "title": "Heads up",
            "message": "Something happened",
            "priority": "medium",
            "expires_at": utcnow() + timedelta(days=7),
        }
        defaults.update(kwargs)
        notification = Notification(**defaults)
        db.session.add(notification)
        db.session.commit()
        return notification
    return _create_notification


@pytest.fixture
def customer(customer_factory):
    return customer_factory()


@pytest.fixture
def admin(customer_factory):
    return customer_factory(first_name="Ada", last_name="Admin", role="admin")


# ---------------------------------------------------------------------------
# Auth headers
# ---------------------------------------------------------------------------
@pytest.fixture
def headers_for(app):
    """Build Authorization headers for a given account id and role"""
    def _headers(account_id, role="customer"):
        token = generate_token(account_id, role=role)
        return {
            "Authorization": "Bearer {}".format(token),
            "Content-Type": "application/json",
        }
    return _headers


@pytest.fixture
def api_key_headers(app):
    return {"X-API-Key": app.config["API_KEY"], "Content-Type": "application/json"}
