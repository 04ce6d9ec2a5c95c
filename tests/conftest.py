# ------------------------------------------------------------------------
# File: conftest.py
# Location: tests/conftest.py
# Description:
#     Shared fixtures: a file-backed SQLite database per test, recording
#     email and real-time collaborators, a controllable clock and a seeded
#     set of users, services and inquiries.
# ------------------------------------------------------------------------

import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone

# Log files go to a throwaway directory; must be set before salesdesk modules configure their loggers.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="salesdesk-logs-"))

import pytest

from salesdesk import create_app
from salesdesk.config import Settings
from salesdesk.db.models import Inquiry, Service, User
from salesdesk.integrations.email import EmailSender
from salesdesk.integrations.realtime import NotificationSink
from salesdesk.services import build_services

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

PROPOSAL_DATA = {
    "clientName": "Ada Lovelace",
    "clientEmail": "Ada@Example.com",
    "clientCompany": "Analytical Engines Ltd",
    "clientPhone": "555-0100",
    "terms": {"validityDays": 14},
    "lineItems": [{"description": "Annual retainer", "amount": 12000}],
}


class Clock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.sent = []
        self._lock = threading.Lock()

    def send(self, to, subject, body):
        with self._lock:
            self.sent.append({"to": to, "subject": subject, "body": body})

    def to(self, address):
        return [mail for mail in self.sent if mail["to"] == address]


class FailingEmailSender(EmailSender):
    def send(self, to, subject, body):
        raise ConnectionError("SMTP server unavailable")


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def emit(self, user_ids, event, payload):
        with self._lock:
            self.events.append({"user_ids": list(user_ids), "event": event, "payload": payload})

    def named(self, event):
        return [e for e in self.events if e["event"] == event]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'salesdesk.db'}",
        secret_key="test-secret-key",
        csrf_secret="test-csrf-secret",
        public_base_url="https://desk.example.com",
        dispatch_workers=4,
    ).validated()


@pytest.fixture
def mailer():
    return RecordingEmailSender()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def services(settings, mailer, sink, clock):
    built = build_services(settings, email_sender=mailer, sinks=[sink], clock=clock, activity_backoff_seconds=0)
    yield built
    built.dispatcher.wait_idle(timeout=10)
    built.shutdown()


@pytest.fixture
def seed(services):
    gateway = services.gateway
    admin = gateway.insert(User(email="reviewer@desk.example.com", first_name="Grace", last_name="Hopper", role="admin"))
    sales = gateway.insert(User(email="sales@desk.example.com", first_name="Alan", last_name="Turing", role="sales"))
    other_sales = gateway.insert(User(email="other@desk.example.com", first_name="Joan", last_name="Clarke", role="sales"))

    contract_service = gateway.insert(Service(name="Managed accounts", requires_contract=True))
    direct_service = gateway.insert(Service(name="One-off consultation", requires_contract=False))

    inquiry = gateway.insert(Inquiry(
        name="Ada Lovelace", email="ada@example.com", company="Analytical Engines Ltd",
        service_id=contract_service.id,
    ))
    direct_inquiry = gateway.insert(Inquiry(
        name="Charles Babbage", email="charles@example.com", company="Difference Ltd",
        service_id=direct_service.id,
    ))
    return {
        "admin": admin,
        "sales": sales,
        "other_sales": other_sales,
        "inquiry": inquiry,
        "direct_inquiry": direct_inquiry,
    }


@pytest.fixture
def sent_proposal(services, seed):
    """A proposal taken through create -> approve -> send, with its raw response token."""
    proposals = services.proposals
    proposal = proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    proposals.approve(proposal.id, seed["admin"].id, admin_notes="Looks good")
    issued = proposals.send(proposal.id, seed["sales"].id)
    services.dispatcher.wait_idle()
    return issued


@pytest.fixture
def app(services):
    app = create_app(services=services)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
