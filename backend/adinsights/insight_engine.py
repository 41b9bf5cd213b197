"""
Insight Engine: deterministic, explainable optimization insights.

Rules are evaluated against a per-run InsightData snapshot. Results are
persisted with fingerprint deduplication (one insight per rule, scope target
and calendar day), scored for triage, and auto-resolved once the triggering
condition no longer holds.

No operation here raises to the caller: failures are logged and surface as
fewer insights, a zero count, or a False flag.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from adinsights.insight_models import (
    INSIGHT_STATUSES,
    InsightData,
    InsightResult,
    InsightRule,
    RunSummary,
    SaveResult,
    can_transition,
)
from adinsights.models import Insight
from adinsights.priority import priority_score
from adinsights.rule_config import RuleThresholds
from adinsights.rules import default_rules
from adinsights.store import DuplicateInsightError, InsightStore, InsightStoreError

logger = logging.getLogger(__name__)

INSIGHT_EXPIRY_DAYS = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_fingerprint(rule_id: str, scope_id: Optional[str], day: str) -> str:
    """Natural key for deduplication: rule, scope target and UTC calendar day."""
    return f"{rule_id}:{scope_id or 'account'}:{day}"


class InsightEngine:
    """Evaluates the rule registry and manages the insight lifecycle for a client."""

    def __init__(
        self,
        store: InsightStore,
        rules: Optional[Sequence[InsightRule]] = None,
        thresholds: Optional[RuleThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: persistence backend for Insight rows
            rules: explicit rule registry; defaults to the built-in rules
            thresholds: tuning for the built-in rules (ignored when rules are given)
            clock: returns the current time; must be timezone aware
        """
        self.store = store
        self.rules = tuple(rules) if rules is not None else default_rules(thresholds)
        self.clock = clock or _utcnow
        logger.info(f"Insight engine ready with {len(self.rules)} rules")

    def _now(self) -> datetime:
        return self.clock().astimezone(timezone.utc)

    def fingerprint_for(self, result: InsightResult, now: Optional[datetime] = None) -> str:
        day = (now or self._now()).date().isoformat()
        return make_fingerprint(result.rule_id, result.scope_id, day)

    # ── Evaluation ──────────────────────────────────────────────────────

    def generate_insights(self, data: InsightData) -> List[InsightResult]:
        """
        Runs every registered rule against the snapshot.

        Args:
            data: metrics for the current and comparison period

        Returns:
            Fired results in registry order. A rule that raises is logged and skipped.
        """
        results: List[InsightResult] = []

        for rule in self.rules:
            try:
                result = rule.evaluate(data)
            except Exception as e:
                logger.error(f"Error evaluating rule '{rule.id}': {e}")
                continue
            if result is not None:
                logger.debug(f"Rule '{rule.id}' triggered: {result.summary}")
                results.append(result)

        logger.info(f"Generated {len(results)} insights for client '{data.client_id}'")
        return results

    # ── Persistence ─────────────────────────────────────────────────────

    def _row_values(self, client_id: str, result: InsightResult, fingerprint: str, now: datetime) -> Dict[str, Any]:
        return {
            "client_id": client_id,
            "scope": result.scope,
            "scope_id": result.scope_id,
            "scope_name": result.scope_name,
            "rule_id": result.rule_id,
            "type": result.type,
            "impact": result.impact,
            "confidence": result.confidence,
            "effort": result.effort,
            "urgency": result.urgency,
            "priority_score": priority_score(result.impact, result.urgency, result.effort),
            "summary": result.summary,
            "explanation": result.explanation,
            "recommendation": result.recommendation,
            "status": "new",
            "data_snapshot": result.data_snapshot,
            "fingerprint": fingerprint,
            "detected_at": now,
            "expires_at": now + timedelta(days=INSIGHT_EXPIRY_DAYS),
            "created_at": now,
            "updated_at": now,
        }

    def save_insights(self, client_id: str, results: Iterable[InsightResult]) -> SaveResult:
        """
        Persists results, skipping any whose fingerprint already exists today.

        Args:
            client_id: owner of the insights
            results: output of generate_insights

        Returns:
            SaveResult with created and skipped counts. Results that fail for
            any other reason are logged and counted in neither.
        """
        outcome = SaveResult()
        now = self._now()

        for result in results:
            fingerprint = self.fingerprint_for(result, now)
            try:
                if self.store.find_by_fingerprint(client_id, fingerprint) is not None:
                    outcome.skipped += 1
                    continue
                self.store.insert(self._row_values(client_id, result, fingerprint, now))
                outcome.created += 1
            except DuplicateInsightError:
                # lost a race with a concurrent insert of the same fingerprint
                logger.debug(f"Insight {fingerprint} inserted concurrently, skipping")
                outcome.skipped += 1
            except Exception as e:
                logger.error(f"Failed to save insight for rule '{result.rule_id}': {e}")

        logger.info(f"Insights saved for client '{client_id}': {outcome.created} created, {outcome.skipped} skipped")
        return outcome

    def auto_resolve_stale_insights(self, client_id: str, active_rule_ids: Iterable[str]) -> int:
        """
        Resolves `new` insights whose rule did not fire in the current run.
        Picked up and ignored insights keep their human triage.

        Returns:
            Number of insights resolved (0 on store failure)
        """
        try:
            count = self.store.resolve_new_except(client_id, list(active_rule_ids), self._now())
        except InsightStoreError as e:
            logger.error(f"Failed to auto-resolve insights for client '{client_id}': {e}")
            return 0

        if count:
            logger.info(f"Auto-resolved {count} stale insights for client '{client_id}'")
        return count

    # ── Reads and user actions ──────────────────────────────────────────

    def get_insights(
        self,
        client_id: str,
        statuses: Optional[List[str]] = None,
        type: Optional[str] = None,
        impact: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Insight]:
        """Returns insights ordered by priority_score desc, then detected_at desc."""
        try:
            return self.store.list_insights(client_id, statuses=statuses, type=type, impact=impact, limit=limit)
        except InsightStoreError as e:
            logger.error(f"Failed to get insights for client '{client_id}': {e}")
            return []

    def get_insight(self, insight_id: str) -> Optional[Insight]:
        try:
            return self.store.get(insight_id)
        except InsightStoreError as e:
            logger.error(f"Failed to get insight '{insight_id}': {e}")
            return None

    def update_insight_status(self, insight_id: str, status: str, user_id: Optional[str] = None) -> bool:
        """
        Moves an insight to a new status and stamps the actor fields.

        Args:
            insight_id: id of the insight
            status: target status (picked_up, ignored or resolved)
            user_id: acting user, recorded for pickup and manual resolution

        Returns:
            True on success; False for unknown status or insight, a transition the
            status machine does not allow, or a store failure.
        """
        if status not in INSIGHT_STATUSES:
            logger.warning(f"Rejected unknown insight status '{status}' for insight '{insight_id}'")
            return False

        try:
            insight = self.store.get(insight_id)
            if insight is None:
                logger.warning(f"Insight '{insight_id}' not found")
                return False
            if not can_transition(insight.status, status):
                logger.warning(f"Rejected insight '{insight_id}' transition {insight.status} -> {status}")
                return False

            now = self._now()
            updates: Dict[str, Any] = {"status": status, "updated_at": now}
            if status == "picked_up":
                updates["picked_up_at"] = now
                updates["picked_up_by"] = user_id
            elif status == "resolved":
                updates["resolved_at"] = now
                updates["resolved_by"] = user_id

            if self.store.update(insight_id, updates) is None:
                logger.warning(f"Insight '{insight_id}' disappeared before update")
                return False
        except InsightStoreError as e:
            logger.error(f"Failed to update insight '{insight_id}' to '{status}': {e}")
            return False

        logger.info(f"Insight '{insight_id}' status updated to '{status}'")
        return True

    # ── Orchestration ───────────────────────────────────────────────────

    def run(self, data: InsightData) -> RunSummary:
        """Generate, save, then auto-resolve everything whose rule did not fire."""
        results = self.generate_insights(data)
        saved = self.save_insights(data.client_id, results)
        resolved = self.auto_resolve_stale_insights(data.client_id, [r.rule_id for r in results])
        return RunSummary(
            generated=len(results),
            created=saved.created,
            skipped=saved.skipped,
            resolved=resolved,
        )
