"""
Metric aggregator: turns already-fetched Google Ads report rows into InsightData.

Rows use the REST (camelCase) shape, e.g.
    {"campaign": {"id": "1", ...}, "campaignBudget": {"amountMicros": "..."},
     "metrics": {"costMicros": "...", "conversions": "...", ...}}

The current period is the last 7 days; the "full" rows cover the last 14 days,
so the previous period is full minus current. Impression-share values arrive
as fractions and are converted to percentages.
"""

from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from adinsights.insight_models import AccountMetrics, CampaignData, InsightData

MICROS = 1_000_000
BUDGET_LIMITED_RATIO = 1.2

CONVERSIONS = "metrics.conversions"
CONVERSIONS_VALUE = "metrics.conversionsValue"
COST_MICROS = "metrics.costMicros"
IS_LOST_BUDGET = "metrics.searchBudgetLostImpressionShare"
IS_LOST_RANK = "metrics.searchRankLostImpressionShare"
BUDGET_MICROS = "campaignBudget.amountMicros"
RECOMMENDED_MICROS = "campaignBudget.recommendedBudgetAmountMicros"

CAMPAIGN_TEXT_DEFAULTS = {
    "campaign.id": "unknown",
    "campaign.name": "Unknown",
    "campaign.advertisingChannelType": "UNKNOWN",
    "campaign.status": "UNKNOWN",
    "campaign.servingStatus": "",
}


def _frame(rows: Optional[Iterable[Dict[str, Any]]], numeric_columns: List[str]) -> pd.DataFrame:
    """Flattens rows and coerces metric columns to numbers (missing -> 0)."""
    df = pd.json_normalize(list(rows or []))
    for col in numeric_columns:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
        else:
            df[col] = 0.0
    return df


def _fill_campaign_text(df: pd.DataFrame) -> pd.DataFrame:
    for col, default in CAMPAIGN_TEXT_DEFAULTS.items():
        if col in df.columns:
            df[col] = df[col].fillna(default).astype(str)
        else:
            df[col] = default
    return df


def aggregate_account_metrics(rows: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, float]:
    """
    Sums account rows. Impression share lost takes the worst (max) row,
    since those values are already ratios and cannot be summed.
    """
    df = _frame(rows, [CONVERSIONS, CONVERSIONS_VALUE, COST_MICROS, IS_LOST_BUDGET, IS_LOST_RANK])
    if df.empty:
        return {
            "conversions": 0.0,
            "conversions_value": 0.0,
            "cost": 0.0,
            "impression_share_lost_budget": 0.0,
            "impression_share_lost_rank": 0.0,
        }
    return {
        "conversions": float(df[CONVERSIONS].sum()),
        "conversions_value": float(df[CONVERSIONS_VALUE].sum()),
        "cost": float(df[COST_MICROS].sum()) / MICROS,
        "impression_share_lost_budget": max(0.0, float(df[IS_LOST_BUDGET].max()) * 100),
        "impression_share_lost_rank": max(0.0, float(df[IS_LOST_RANK].max()) * 100),
    }


def aggregate_campaigns(
    current_rows: Optional[Iterable[Dict[str, Any]]],
    full_rows: Optional[Iterable[Dict[str, Any]]] = None,
) -> List[CampaignData]:
    """Groups campaign rows by id, in order of first appearance."""
    current = _frame(current_rows, [CONVERSIONS, COST_MICROS, IS_LOST_BUDGET, BUDGET_MICROS])
    if current.empty:
        return []
    current = _fill_campaign_text(current)
    if RECOMMENDED_MICROS in current.columns:
        current[RECOMMENDED_MICROS] = pd.to_numeric(current[RECOMMENDED_MICROS], errors="coerce")
    else:
        current[RECOMMENDED_MICROS] = float("nan")

    grouped = current.groupby("campaign.id", sort=False).agg(
        name=("campaign.name", "first"),
        type=("campaign.advertisingChannelType", "first"),
        status=("campaign.status", "first"),
        serving_status=("campaign.servingStatus", "first"),
        conversions=(CONVERSIONS, "sum"),
        cost_micros=(COST_MICROS, "sum"),
        budget_micros=(BUDGET_MICROS, "first"),
        recommended_micros=(RECOMMENDED_MICROS, "first"),
        is_lost_budget=(IS_LOST_BUDGET, "first"),
    )

    full = _frame(full_rows, [CONVERSIONS, COST_MICROS])
    totals = None
    if not full.empty:
        full = _fill_campaign_text(full)
        totals = full.groupby("campaign.id").agg(
            conversions=(CONVERSIONS, "sum"),
            cost_micros=(COST_MICROS, "sum"),
        )

    campaigns = []
    for campaign_id, row in grouped.iterrows():
        conversions = float(row["conversions"])
        cost = float(row["cost_micros"]) / MICROS
        budget = float(row["budget_micros"]) / MICROS
        recommended = None if pd.isna(row["recommended_micros"]) else float(row["recommended_micros"]) / MICROS

        previous_conversions = 0.0
        previous_cost = 0.0
        if totals is not None and campaign_id in totals.index:
            previous_conversions = float(totals.at[campaign_id, "conversions"]) - conversions
            previous_cost = float(totals.at[campaign_id, "cost_micros"]) / MICROS - cost

        budget_limited = row["serving_status"] == "ELIGIBLE_LIMITED" or (
            recommended is not None and recommended > budget * BUDGET_LIMITED_RATIO
        )
        campaigns.append(
            CampaignData(
                id=str(campaign_id),
                name=row["name"],
                type=row["type"],
                status=row["status"],
                conversions=conversions,
                previous_conversions=previous_conversions,
                cost=cost,
                previous_cost=previous_cost,
                impression_share_lost_budget=float(row["is_lost_budget"]) * 100,
                budget_limited=bool(budget_limited),
                budget=budget,
                recommended_budget=recommended,
            )
        )
    return campaigns


def build_insight_data(
    client_id: str,
    client_name: str,
    currency: str,
    account_current_rows: Optional[Iterable[Dict[str, Any]]],
    account_full_rows: Optional[Iterable[Dict[str, Any]]],
    campaign_current_rows: Optional[Iterable[Dict[str, Any]]] = None,
    campaign_full_rows: Optional[Iterable[Dict[str, Any]]] = None,
) -> InsightData:
    """
    Builds the snapshot the rules run on.

    CPA = cost / conversions (0 without conversions); ROAS = conversion value /
    cost (0 without cost). Previous ROAS is only derived when the full-window
    rows carry conversion value.
    """
    full_rows = list(account_full_rows or [])
    current = aggregate_account_metrics(account_current_rows)
    full = aggregate_account_metrics(full_rows)

    previous_conversions = full["conversions"] - current["conversions"]
    previous_cost = full["cost"] - current["cost"]

    previous_roas = 0.0
    if any("conversionsValue" in (r.get("metrics") or {}) for r in full_rows):
        previous_value = full["conversions_value"] - current["conversions_value"]
        previous_roas = previous_value / previous_cost if previous_cost > 0 else 0.0

    account = AccountMetrics(
        conversions=current["conversions"],
        previous_conversions=previous_conversions,
        cost=current["cost"],
        previous_cost=previous_cost,
        cpa=current["cost"] / current["conversions"] if current["conversions"] > 0 else 0.0,
        previous_cpa=previous_cost / previous_conversions if previous_conversions > 0 else 0.0,
        roas=current["conversions_value"] / current["cost"] if current["cost"] > 0 else 0.0,
        previous_roas=previous_roas,
        impression_share_lost_budget=current["impression_share_lost_budget"],
        impression_share_lost_rank=current["impression_share_lost_rank"],
    )

    return InsightData(
        account=account,
        campaigns=aggregate_campaigns(campaign_current_rows, campaign_full_rows),
        client_id=client_id,
        client_name=client_name,
        currency=currency or "EUR",
    )
