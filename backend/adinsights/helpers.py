from typing import Dict, List

from adinsights.models import Insight


def summarize_insights(insights: List[Insight]) -> Dict:
    """Counts per type and impact, plus how many are still untouched."""
    summary = {
        "total": len(insights),
        "by_type": {},
        "by_impact": {},
        "new_count": 0,
    }
    for insight in insights:
        summary["by_type"][insight.type] = summary["by_type"].get(insight.type, 0) + 1
        summary["by_impact"][insight.impact] = summary["by_impact"].get(insight.impact, 0) + 1
        if insight.status == "new":
            summary["new_count"] += 1
    return summary


def parse_status_filter(raw: str) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]
