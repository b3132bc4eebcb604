import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

from app.infrastructure.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("user_id", "gstin", name="uq_clients_user_gstin"),)
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    business_name = Column(String(255), nullable=False)
    gstin = Column(String(15), index=True)
    pan = Column(String(10))
    email = Column(String(255))
    phone = Column(String(20))
    address = Column(Text)
    state = Column(String(100))
    business_type = Column(String(50))
    gst_status = Column(String(20), nullable=False, default="INACTIVE")
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class GSTRegistration(Base):
    __tablename__ = "gst_registrations"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    application_no = Column(String(50))
    reference_no = Column(String(50))
    arn = Column(String(50))
    effective_date = Column(Date)
    status = Column(String(20), nullable=False, default="Draft")
    submitted_at = Column(DateTime(timezone=True))
    approved_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class GSTReturn(Base):
    __tablename__ = "gst_returns"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    return_type = Column(String(20), nullable=False)
    period = Column(String(20), nullable=False)
    due_date = Column(Date)
    acknowledgement_no = Column(String(50))
    status = Column(String(20), nullable=False, default="Draft")
    filed_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class GSTPayment(Base):
    __tablename__ = "gst_payments"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    return_id = Column(Uuid, ForeignKey("gst_returns.id", ondelete="SET NULL"), index=True)
    challan_no = Column(String(50))
    payment_type = Column(String(20), default="GST")
    amount = Column(Numeric(14, 2), nullable=False, default=0)
    bank_reference = Column(String(100))
    status = Column(String(20), nullable=False, default="PENDING")
    paid_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class Notice(Base):
    __tablename__ = "notices"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    notice_no = Column(String(50))
    notice_type = Column(String(30), nullable=False)
    subject = Column(String(255), nullable=False)
    description = Column(Text)
    received_at = Column(Date)
    due_date = Column(Date)
    reply_draft = Column(Text)
    status = Column(String(20), nullable=False, default="RECEIVED")
    replied_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class Document(Base):
    __tablename__ = "documents"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    notice_id = Column(Uuid, ForeignKey("notices.id", ondelete="CASCADE"), index=True)
    registration_id = Column(Uuid, ForeignKey("gst_registrations.id", ondelete="CASCADE"), index=True)
    return_id = Column(Uuid, ForeignKey("gst_returns.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50))
    file_path = Column(String(500))
    mime_type = Column(String(100))
    file_size = Column(Integer)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)


class Invoice(Base):
    __tablename__ = "invoices"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False)
    invoice_no = Column(String(50), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False, default=0)
    due_date = Column(Date)
    status = Column(String(20), nullable=False, default="Draft")
    notes = Column(Text)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    kind = Column(String(50), nullable=False)
    type = Column(String(10), nullable=False, default="INFO")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
