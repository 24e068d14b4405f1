from sqlalchemy import Column, String, Float, Integer, DateTime, JSON, Index, text
from .db import Base


class ScribeRequestRecord(Base):
    __tablename__ = "scribe_requests"

    id = Column(String, primary_key=True)
    requester_id = Column(String, nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    urgency = Column(String, nullable=False, default="normal")
    required_languages = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, index=True)  # pending/matched/in_progress/completed/cancelled


class MatchAttemptRecord(Base):
    __tablename__ = "match_attempts"

    id = Column(String, primary_key=True)
    request_id = Column(String, nullable=False, index=True)
    volunteer_id = Column(String, nullable=False, index=True)
    score = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    state = Column(String, nullable=False, index=True)  # proposed/accepted/declined/expired/superseded
    proposed_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # at most one live proposal per request
        Index(
            "uq_match_attempts_active_request",
            "request_id",
            unique=True,
            postgresql_where=text("state = 'proposed'"),
            sqlite_where=text("state = 'proposed'"),
        ),
    )
