"""Database models."""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text, Float
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Call(Base):
    """Call history record, one per call leg."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_control_id = Column(String, unique=True, index=True, nullable=False)
    direction = Column(String, nullable=True)  # inbound, outbound
    role = Column(String, nullable=True)  # caller, ai, contact, human
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    conference_id = Column(String, index=True, nullable=True)
    status = Column(String, default="initiated", nullable=False)  # initiated, in_progress, connected, completed, failed
    started_at = Column(DateTime, default=utcnow, nullable=False)
    connected_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    hangup_cause = Column(String, nullable=True)
    transcript = Column(Text, nullable=True)
