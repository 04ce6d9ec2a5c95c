# File: salesdesk/db/models.py

from sqlalchemy import (
    Column, String, DateTime, Enum, Text, Boolean, Integer, ForeignKey, UniqueConstraint, TypeDecorator
)
from sqlalchemy.orm import declarative_base
import enum
import uuid
import datetime

Base = declarative_base()


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def new_id():
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back timezone-aware UTC (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)


class ProposalStatus(enum.Enum):
    Pending = "pending"
    Approved = "approved"
    Disapproved = "disapproved"
    Sent = "sent"
    Accepted = "accepted"
    Rejected = "rejected"
    Cancelled = "cancelled"
    Expired = "expired"


class ClientResponse(enum.Enum):
    Accepted = "accepted"
    Rejected = "rejected"


class ContractStatus(enum.Enum):
    Pending_Request = "pending_request"
    Requested = "requested"
    Ready_For_Sales = "ready_for_sales"
    Sent_To_Sales = "sent_to_sales"
    Sent_To_Client = "sent_to_client"
    Signed = "signed"
    Hardbound_Received = "hardbound_received"


class EventStatus(enum.Enum):
    Scheduled = "scheduled"
    Completed = "completed"
    Cancelled = "cancelled"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="sales")  # admin | super_admin | sales

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    requires_contract = Column(Boolean, nullable=False, default=True)


class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    company = Column(String, nullable=True)
    status = Column(String, nullable=False, default="new")  # new | proposal_created | submitted_proposal | on_boarded
    service_id = Column(String(36), ForeignKey("services.id"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(String(36), primary_key=True, default=new_id)
    proposal_number = Column(String, nullable=False, unique=True)
    inquiry_id = Column(String(36), ForeignKey("inquiries.id"), nullable=False)
    status = Column(Enum(ProposalStatus, values_callable=_values), nullable=False, default=ProposalStatus.Pending)
    requested_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(UTCDateTime, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    proposal_data = Column(Text, nullable=False, default="{}")
    pdf_url = Column(String, nullable=True)
    sent_by = Column(String(36), nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)
    client_response_token_hash = Column(String(64), nullable=True)
    client_response = Column(Enum(ClientResponse, values_callable=_values), nullable=True)
    client_response_at = Column(UTCDateTime, nullable=True)
    client_response_ip = Column(String(45), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=new_id)
    contract_number = Column(String, nullable=True, unique=True)
    proposal_id = Column(String(36), ForeignKey("proposals.id"), nullable=False, unique=True)
    requested_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(Enum(ContractStatus, values_callable=_values), nullable=False, default=ContractStatus.Pending_Request)
    contract_details = Column(Text, nullable=True)
    requested_at = Column(UTCDateTime, nullable=True)
    contract_pdf_url = Column(String, nullable=True)
    is_generated = Column(Boolean, nullable=False, default=False)
    prepared_by = Column(String(36), nullable=True)
    prepared_at = Column(UTCDateTime, nullable=True)
    sent_to_sales_by = Column(String(36), nullable=True)
    sent_to_sales_at = Column(UTCDateTime, nullable=True)
    sent_to_client_by = Column(String(36), nullable=True)
    sent_to_client_at = Column(UTCDateTime, nullable=True)
    client_email = Column(String, nullable=True)
    submission_token_hash = Column(String(64), nullable=True)
    submission_expires_at = Column(UTCDateTime, nullable=True)
    signed_contract_url = Column(String, nullable=True)
    signed_at = Column(UTCDateTime, nullable=True)
    signed_ip = Column(String(45), nullable=True)
    hardbound_url = Column(String, nullable=True)
    hardbound_received_by = Column(String(36), nullable=True)
    hardbound_received_at = Column(UTCDateTime, nullable=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("email", "company_name", name="uq_clients_email_company"),)

    id = Column(String(36), primary_key=True, default=new_id)
    company_name = Column(String, nullable=False)
    contact_person = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    industry = Column(String, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String, nullable=True)
    scheduled_date = Column(UTCDateTime, nullable=False)
    status = Column(Enum(EventStatus, values_callable=_values), nullable=False, default=EventStatus.Scheduled)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    reminder_24h_sent_at = Column(UTCDateTime, nullable=True)
    reminder_1h_sent_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String(36), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class Counter(Base):
    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)
