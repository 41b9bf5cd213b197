"""
Rule thresholds: tunable constants for the default insight rules.

Defaults are the production values. Overrides live in a YAML
file (config/insight_rules.yaml, or the path in INSIGHT_RULES_CONFIG) under a
top-level 'thresholds' key.
"""

import os
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "insight_rules.yaml"


@dataclass(frozen=True)
class RuleThresholds:
    """Percentages are expressed 0-100, money in account currency."""
    # cpa_increase_with_budget_limit
    cpa_increase_pct: float = 25.0
    cpa_budget_lost_is_pct: float = 15.0
    # high_rank_loss
    rank_lost_is_pct: float = 30.0
    rank_lost_is_high_pct: float = 50.0
    # conversion_drop_stable_spend
    conversion_drop_pct: float = 20.0
    conversion_drop_high_pct: float = 40.0
    stable_spend_pct: float = 10.0
    # roas_drop_high_spend_campaign
    high_spend_share: float = 0.2
    campaign_conversion_drop_pct: float = 30.0
    # budget_limited_high_performer
    high_performer_cpa_ratio: float = 0.8
    # zero_conversions_with_spend
    min_waste_spend: float = 50.0
    high_waste_total: float = 200.0


DEFAULT_THRESHOLDS = RuleThresholds()


def thresholds_from_dict(data: Optional[Dict[str, Any]]) -> RuleThresholds:
    """Builds thresholds from a mapping, ignoring unknown keys."""
    if not data:
        return DEFAULT_THRESHOLDS

    known = {f.name for f in fields(RuleThresholds)}
    overrides = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown rule threshold '{key}'")
            continue
        try:
            overrides[key] = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Rule threshold '{key}' must be numeric, got {value!r}")

    return replace(DEFAULT_THRESHOLDS, **overrides)


def load_thresholds(path: Optional[Union[str, os.PathLike]] = None) -> RuleThresholds:
    """
    Loads rule thresholds from YAML.

    Args:
        path: explicit config file; falls back to INSIGHT_RULES_CONFIG, then
            the bundled config/insight_rules.yaml

    Returns:
        RuleThresholds (defaults when no file is found)
    """
    config_path = Path(path or os.getenv("INSIGHT_RULES_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        logger.warning(f"Rule config not found at {config_path}, using defaults")
        return DEFAULT_THRESHOLDS

    with open(config_path, "r") as f:
        config_data = yaml.safe_load(f) or {}

    if not isinstance(config_data, dict):
        raise ValueError(f"{config_path.name} must contain a mapping")

    thresholds = thresholds_from_dict(config_data.get("thresholds"))
    logger.info(f"Loaded rule thresholds from {config_path}")
    return thresholds
