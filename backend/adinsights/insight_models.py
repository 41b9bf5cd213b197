"""
Insight models (dataclasses) shared by the rule registry and the insight engine.
Keeps business structures separate from transport / persistence concerns.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


LEVELS = ("low", "medium", "high")
INSIGHT_TYPES = ("performance", "budget", "bidding", "structure", "creative")
INSIGHT_SCOPES = ("account", "campaign", "ad_group", "asset_group")
INSIGHT_STATUSES = ("new", "picked_up", "ignored", "resolved")

# Allowed status moves; resolved and ignored are terminal.
STATUS_TRANSITIONS: Dict[str, tuple] = {
    "new": ("picked_up", "ignored", "resolved"),
    "picked_up": ("resolved",),
    "ignored": (),
    "resolved": (),
}


def can_transition(current: str, target: str) -> bool:
    """True when an insight in `current` status may move to `target`."""
    return target in STATUS_TRANSITIONS.get(current, ())


@dataclass
class AccountMetrics:
    """Account totals for the current and the comparison period."""
    conversions: float = 0.0
    previous_conversions: float = 0.0
    cost: float = 0.0
    previous_cost: float = 0.0
    cpa: float = 0.0
    previous_cpa: float = 0.0
    roas: float = 0.0
    previous_roas: float = 0.0
    impression_share_lost_budget: float = 0.0  # percentage
    impression_share_lost_rank: float = 0.0  # percentage


@dataclass
class CampaignData:
    """Per-campaign metrics for one evaluation run."""
    id: str
    name: str
    type: str = "UNKNOWN"
    status: str = "ENABLED"
    conversions: float = 0.0
    previous_conversions: float = 0.0
    cost: float = 0.0
    previous_cost: float = 0.0
    impression_share_lost_budget: float = 0.0
    budget_limited: bool = False
    budget: float = 0.0
    recommended_budget: Optional[float] = None


@dataclass
class InsightData:
    """Snapshot the rules are evaluated against. Built fresh per run."""
    account: AccountMetrics
    campaigns: List[CampaignData] = field(default_factory=list)
    client_id: str = ""
    client_name: str = ""
    currency: str = "EUR"


@dataclass
class InsightResult:
    """A fired rule, before persistence."""
    rule_id: str
    scope: str
    type: str
    impact: str
    confidence: str
    summary: str
    explanation: str
    recommendation: str
    effort: str = "medium"
    urgency: str = "medium"
    scope_id: Optional[str] = None
    scope_name: Optional[str] = None
    data_snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InsightRule:
    """A named, side-effect free evaluation function."""
    id: str
    name: str
    description: str
    type: str
    evaluate: Callable[[InsightData], Optional[InsightResult]]


@dataclass
class SaveResult:
    created: int = 0
    skipped: int = 0


@dataclass
class RunSummary:
    """Counts reported back after a full generate/save/resolve pass."""
    generated: int = 0
    created: int = 0
    skipped: int = 0
    resolved: int = 0
