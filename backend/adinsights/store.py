"""
Insight store interface.
The engine only talks to an InsightStore; SqlAlchemyInsightStore is the
relational implementation backed by the `insights` table.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from adinsights.models import Insight


class InsightStoreError(Exception):
    """Raised when the store cannot complete a read or write."""
    pass


class DuplicateInsightError(InsightStoreError):
    """Raised when an insert hits the (client_id, fingerprint) unique constraint."""
    pass


class InsightStore(ABC):
    """Abstract base class for insight persistence."""

    @abstractmethod
    def find_by_fingerprint(self, client_id: str, fingerprint: str) -> Optional[Insight]:
        ...

    @abstractmethod
    def insert(self, values: Dict[str, Any]) -> Insight:
        """
        Insert a new insight row.
        Raises DuplicateInsightError when (client_id, fingerprint) already exists.
        """
        ...

    @abstractmethod
    def resolve_new_except(self, client_id: str, active_rule_ids: Iterable[str], resolved_at: datetime) -> int:
        """Bulk-resolve `new` insights whose rule_id is not active. Returns rows updated."""
        ...

    @abstractmethod
    def list_insights(
        self,
        client_id: str,
        *,
        statuses: Optional[List[str]] = None,
        type: Optional[str] = None,
        impact: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Insight]:
        """Filtered read ordered by priority_score desc, then detected_at desc."""
        ...

    @abstractmethod
    def get(self, insight_id: Union[str, UUID]) -> Optional[Insight]:
        ...

    @abstractmethod
    def update(self, insight_id: Union[str, UUID], values: Dict[str, Any]) -> Optional[Insight]:
        """Apply column updates to one insight. Returns None when it does not exist."""
        ...


def _as_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SqlAlchemyInsightStore(InsightStore):
    """InsightStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_fingerprint(self, client_id: str, fingerprint: str) -> Optional[Insight]:
        try:
            return (
                self.db.query(Insight)
                .filter(Insight.client_id == client_id, Insight.fingerprint == fingerprint)
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Fingerprint lookup failed: {e}") from e

    def insert(self, values: Dict[str, Any]) -> Insight:
        insight = Insight(**values)
        try:
            self.db.add(insight)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateInsightError(
                f"Insight {values.get('fingerprint')} already exists for client {values.get('client_id')}"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Insert failed: {e}") from e
        self.db.refresh(insight)
        return insight

    def resolve_new_except(self, client_id: str, active_rule_ids: Iterable[str], resolved_at: datetime) -> int:
        active = sorted(set(active_rule_ids))
        query = self.db.query(Insight).filter(Insight.client_id == client_id, Insight.status == "new")
        if active:
            query = query.filter(Insight.rule_id.notin_(active))
        try:
            count = query.update(
                {"status": "resolved", "resolved_at": resolved_at, "updated_at": resolved_at},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Auto-resolve failed: {e}") from e
        return count

    def list_insights(
        self,
        client_id: str,
        *,
        statuses: Optional[List[str]] = None,
        type: Optional[str] = None,
        impact: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Insight]:
        query = self.db.query(Insight).filter(Insight.client_id == client_id)
        if statuses:
            query = query.filter(Insight.status.in_(statuses))
        if type:
            query = query.filter(Insight.type == type)
        if impact:
            query = query.filter(Insight.impact == impact)
        query = query.order_by(Insight.priority_score.desc(), Insight.detected_at.desc())
        if limit:
            query = query.limit(limit)
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Insight query failed: {e}") from e

    def get(self, insight_id: Union[str, UUID]) -> Optional[Insight]:
        key = _as_uuid(insight_id)
        if key is None:
            return None
        try:
            return self.db.get(Insight, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Insight lookup failed: {e}") from e

    def update(self, insight_id: Union[str, UUID], values: Dict[str, Any]) -> Optional[Insight]:
        insight = self.get(insight_id)
        if insight is None:
            return None
        for key, value in values.items():
            setattr(insight, key, value)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Insight update failed: {e}") from e
        self.db.refresh(insight)
        return insight
