"""Priority score: (impact_weight * urgency_weight) / effort_weight, range 0.33 - 9.0."""

LEVEL_WEIGHTS = {"low": 1, "medium": 2, "high": 3}


def level_weight(level: str) -> int:
    try:
        return LEVEL_WEIGHTS[level]
    except KeyError:
        raise ValueError(f"Unknown level '{level}', expected one of {sorted(LEVEL_WEIGHTS)}")


def priority_score(impact: str, urgency: str = "medium", effort: str = "medium") -> float:
    """Higher means more valuable to act on first. Rounded to the stored precision."""
    score = (level_weight(impact) * level_weight(urgency)) / level_weight(effort)
    return round(score, 2)
