"""
SQLAlchemy models for persisted insights.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Index, JSON as JSON_TYPE, Numeric, UniqueConstraint
from sqlalchemy.types import String, TIMESTAMP, Text, Uuid as UUID_TYPE

from adinsights.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Insight(Base):
    __tablename__ = "insights"
    __table_args__ = (
        UniqueConstraint("client_id", "fingerprint", name="insights_client_fingerprint_unique"),
        Index("idx_insights_client_status", "client_id", "status"),
        Index("idx_insights_client_type", "client_id", "type"),
        Index("idx_insights_client_status_priority", "client_id", "status", "priority_score"),
    )

    id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(String(255), nullable=False)

    scope = Column(String(50), nullable=False, default="account")  # account | campaign | ad_group | asset_group
    scope_id = Column(String(255), nullable=True)
    scope_name = Column(String(255), nullable=True)

    rule_id = Column(String(100), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # performance | budget | bidding | structure | creative

    impact = Column(String(20), nullable=False, default="medium", index=True)
    confidence = Column(String(20), nullable=False, default="medium")
    effort = Column(String(20), nullable=False, default="medium")
    urgency = Column(String(20), nullable=False, default="medium")
    priority_score = Column(Numeric(5, 2, asdecimal=False), nullable=False, default=1.0, index=True)

    summary = Column(Text, nullable=False)
    explanation = Column(Text, nullable=False)
    recommendation = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default="new")  # new | picked_up | ignored | resolved
    picked_up_at = Column(TIMESTAMP(timezone=True), nullable=True)
    picked_up_by = Column(String(255), nullable=True)
    resolved_at = Column(TIMESTAMP(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)

    data_snapshot = Column(JSON_TYPE, default=dict)  # metrics that justified the insight
    fingerprint = Column(String(255), nullable=False)  # rule_id:scope_id:date

    detected_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, index=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        """JSON-friendly representation for the API layer."""
        def _iso(value):
            return value.isoformat() if value else None

        return {
            "id": str(self.id),
            "client_id": self.client_id,
            "scope": self.scope,
            "scope_id": self.scope_id,
            "scope_name": self.scope_name,
            "rule_id": self.rule_id,
            "type": self.type,
            "impact": self.impact,
            "confidence": self.confidence,
            "effort": self.effort,
            "urgency": self.urgency,
            "priority_score": float(self.priority_score) if self.priority_score is not None else None,
            "summary": self.summary,
            "explanation": self.explanation,
            "recommendation": self.recommendation,
            "status": self.status,
            "picked_up_at": _iso(self.picked_up_at),
            "picked_up_by": self.picked_up_by,
            "resolved_at": _iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "data_snapshot": self.data_snapshot or {},
            "fingerprint": self.fingerprint,
            "detected_at": _iso(self.detected_at),
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
