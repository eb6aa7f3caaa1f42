"""SQLAlchemy models for the payment engine audit store."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    """
    Latest known state of one submitted payment request.

    One row per SubmissionSession, upserted on every recorded transition.
    The live state machine is authoritative; this row is for tracing.
    """

    __tablename__ = "submissions"

    id = Column(String(12), primary_key=True)
    order_reference = Column(String(100), nullable=False, index=True)
    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    payment_method_type = Column(String(30), nullable=True)
    state = Column(String(30), nullable=False, default="created")
    status = Column(String(20), nullable=True)  # success, retry, failure
    error = Column(Text, nullable=True)
    interaction_rounds = Column(Integer, default=0)
    transaction_id = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    audit_logs = relationship("AuditLog", back_populates="submission", lazy="raise")


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every session transition (submission, interaction issued, callback
    matched, terminal status) gets an append-only entry.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(12), ForeignKey("submissions.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    submission = relationship("Submission", back_populates="audit_logs")
