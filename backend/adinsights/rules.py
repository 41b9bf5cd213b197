"""
Default insight rules.

Every rule is a pure function over an InsightData snapshot that returns a single
InsightResult when its condition holds, or None. Rules never look at each
other's output. Campaign-scoped rules report the first matching campaign in
input order.
"""

from functools import partial
from typing import List, Optional, Tuple

from adinsights.insight_models import CampaignData, InsightData, InsightResult, InsightRule
from adinsights.rule_config import DEFAULT_THRESHOLDS, RuleThresholds


def percent_change(current: float, previous: float) -> float:
    """
    Period-over-period change in percent.

    Returns 0 when there is no baseline (previous == 0), even if current > 0;
    callers must not read that as "unchanged".
    """
    if not previous:
        return 0.0
    return ((current - previous) / previous) * 100


def _campaign_cpa(campaign: CampaignData) -> float:
    return campaign.cost / campaign.conversions if campaign.conversions > 0 else 0.0


# ── Account rules ───────────────────────────────────────────────────────

def cpa_increase_with_budget_limit(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    """CPA rose sharply while budget is throttling delivery."""
    account = data.account
    cpa_change = percent_change(account.cpa, account.previous_cpa)

    if cpa_change < t.cpa_increase_pct or account.impression_share_lost_budget <= t.cpa_budget_lost_is_pct:
        return None

    return InsightResult(
        rule_id="cpa_increase_with_budget_limit",
        scope="account",
        type="budget",
        impact="high",
        confidence="high",
        effort="low",
        urgency="high",
        summary=f"CPA +{cpa_change:.0f}% while budget limited",
        explanation=(
            f"CPA rose {cpa_change:.0f}% compared to the previous period. "
            f"At the same time {account.impression_share_lost_budget:.0f}% of impressions are lost to budget. "
            "Conversions are being bought under sub-optimal conditions."
        ),
        recommendation="Raise the daily budget by 10-20% or loosen the target CPA to win cheaper conversions.",
        data_snapshot={
            "cpa": account.cpa,
            "previous_cpa": account.previous_cpa,
            "cpa_change_percent": cpa_change,
            "impression_share_lost_budget": account.impression_share_lost_budget,
        },
    )


def high_rank_loss(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    lost_rank = data.account.impression_share_lost_rank
    if lost_rank <= t.rank_lost_is_pct:
        return None

    return InsightResult(
        rule_id="high_rank_loss",
        scope="account",
        type="bidding",
        impact="high" if lost_rank > t.rank_lost_is_high_pct else "medium",
        confidence="high",
        effort="medium",
        urgency="medium",
        summary=f"{lost_rank:.0f}% of impressions lost to ad rank",
        explanation=(
            f"{lost_rank:.0f}% of potential impressions are lost because ads rank too low. "
            "Bids are too low or Ad Rank is held back by quality."
        ),
        recommendation="Raise bids on key terms or improve Quality Score with better ads and landing pages.",
        data_snapshot={"impression_share_lost_rank": lost_rank},
    )


def conversion_drop_stable_spend(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    """Conversions fell while spend stayed flat: an efficiency problem, not a budget one."""
    account = data.account
    conversion_change = percent_change(account.conversions, account.previous_conversions)
    cost_change = percent_change(account.cost, account.previous_cost)

    if conversion_change > -t.conversion_drop_pct or abs(cost_change) > t.stable_spend_pct:
        return None

    impact = "high" if conversion_change <= -t.conversion_drop_high_pct else "medium"
    sign = "+" if cost_change > 0 else ""
    return InsightResult(
        rule_id="conversion_drop_stable_spend",
        scope="account",
        type="performance",
        impact=impact,
        # spend being flat is a weaker causal signal
        confidence="medium",
        effort="medium",
        urgency="high" if impact == "high" else "medium",
        summary=f"Conversions {conversion_change:.0f}% with stable spend",
        explanation=(
            f"Conversions dropped {abs(conversion_change):.0f}% "
            f"while spend stayed roughly flat ({sign}{cost_change:.0f}%). "
            "This points at an efficiency problem rather than a budget problem."
        ),
        recommendation="Find the campaigns or keywords that got worse and verify conversion tracking still fires.",
        data_snapshot={
            "conversions": account.conversions,
            "previous_conversions": account.previous_conversions,
            "conversion_change_percent": conversion_change,
            "cost": account.cost,
            "previous_cost": account.previous_cost,
            "cost_change_percent": cost_change,
        },
    )


# ── Campaign rules ──────────────────────────────────────────────────────

def roas_drop_high_spend_campaign(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    account_cost = data.account.cost
    match = None
    for campaign in data.campaigns:
        change = percent_change(campaign.conversions, campaign.previous_conversions)
        if campaign.cost > account_cost * t.high_spend_share and change <= -t.campaign_conversion_drop_pct:
            match = campaign
            break

    if match is None:
        return None

    conversion_change = percent_change(match.conversions, match.previous_conversions)
    cost_share = (match.cost / account_cost) * 100 if account_cost > 0 else 100.0
    return InsightResult(
        rule_id="roas_drop_high_spend_campaign",
        scope="campaign",
        scope_id=match.id,
        scope_name=match.name,
        type="performance",
        impact="high",
        confidence="high",
        effort="medium",
        urgency="high",
        summary=f"{match.name}: conversions {conversion_change:.0f}%",
        explanation=(
            f'Campaign "{match.name}" lost {abs(conversion_change):.0f}% of its conversions '
            f"and carries {cost_share:.0f}% of total spend, so it drags down overall performance."
        ),
        recommendation="Review this campaign in detail: keyword, bid and landing page changes.",
        data_snapshot={
            "campaign_id": match.id,
            "campaign_name": match.name,
            "conversions": match.conversions,
            "previous_conversions": match.previous_conversions,
            "cost": match.cost,
            "cost_share_percent": cost_share,
        },
    )


def budget_limited_high_performer(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    account_cpa = data.account.cpa
    match = None
    for campaign in data.campaigns:
        if not campaign.budget_limited or campaign.conversions <= 0 or campaign.cost <= 0:
            continue
        if account_cpa == 0 or _campaign_cpa(campaign) < account_cpa * t.high_performer_cpa_ratio:
            match = campaign
            break

    if match is None:
        return None

    campaign_cpa = _campaign_cpa(match)
    explanation = f'Campaign "{match.name}" converts at a CPA of {data.currency} {campaign_cpa:.2f}'
    if account_cpa > 0:
        explanation += f", {(1 - campaign_cpa / account_cpa) * 100:.0f}% better than the account average"
    explanation += ", but it is held back by its budget."

    if match.recommended_budget:
        recommendation = (
            f"Raise the budget to {data.currency} {match.recommended_budget:.0f}/day to capture more conversions."
        )
    else:
        recommendation = "Raise the daily budget by 20-30% to capture more conversions at a below-average cost."

    return InsightResult(
        rule_id="budget_limited_high_performer",
        scope="campaign",
        scope_id=match.id,
        scope_name=match.name,
        type="budget",
        impact="high",
        confidence="high",
        # a single budget edit
        effort="low",
        urgency="medium",
        summary=f"{match.name} performs well but is budget limited",
        explanation=explanation,
        recommendation=recommendation,
        data_snapshot={
            "campaign_id": match.id,
            "campaign_name": match.name,
            "campaign_cpa": campaign_cpa,
            "account_cpa": account_cpa,
            "current_budget": match.budget,
            "recommended_budget": match.recommended_budget,
        },
    )


def zero_conversions_with_spend(data: InsightData, t: RuleThresholds) -> Optional[InsightResult]:
    """Enabled campaigns that spent money without a single conversion, aggregated."""
    wasted = [
        c for c in data.campaigns
        if c.status == "ENABLED" and c.conversions == 0 and c.cost > t.min_waste_spend
    ]
    if not wasted:
        return None

    total_waste = sum(c.cost for c in wasted)
    impact = "high" if total_waste > t.high_waste_total else "medium"
    return InsightResult(
        rule_id="zero_conversions_with_spend",
        scope="account",
        type="performance",
        impact=impact,
        confidence="high",
        effort="low",
        urgency="high" if impact == "high" else "medium",
        summary=f"{len(wasted)} campaigns without conversions ({data.currency} {total_waste:.0f} spent)",
        explanation=(
            f"{len(wasted)} active campaign(s) spent {data.currency} {total_waste:.0f} together "
            "without a single conversion. That budget can likely be used better elsewhere."
        ),
        recommendation="Pause these campaigns or find out why they do not convert. Check landing pages and tracking.",
        data_snapshot={
            "campaigns": [{"id": c.id, "name": c.name, "cost": c.cost} for c in wasted],
            "total_waste": total_waste,
        },
    )


# ── Registry ────────────────────────────────────────────────────────────

_RULE_DEFINITIONS: List[Tuple[str, str, str, str, object]] = [
    ("cpa_increase_with_budget_limit", "CPA increase while budget limited",
     "Detects a rising CPA while budget limits delivery", "budget", cpa_increase_with_budget_limit),
    ("high_rank_loss", "High impression share lost to rank",
     "Detects many impressions lost to low ad rank", "bidding", high_rank_loss),
    ("conversion_drop_stable_spend", "Conversion drop with stable spend",
     "Detects falling conversions while spend stays flat", "performance", conversion_drop_stable_spend),
    ("roas_drop_high_spend_campaign", "Conversion drop in high-spend campaign",
     "Detects a conversion drop in a campaign carrying a large share of spend", "performance",
     roas_drop_high_spend_campaign),
    ("budget_limited_high_performer", "Budget limited high performer",
     "Detects a well performing campaign held back by budget", "budget", budget_limited_high_performer),
    ("zero_conversions_with_spend", "No conversions despite spend",
     "Detects enabled campaigns spending without converting", "performance", zero_conversions_with_spend),
]


def default_rules(thresholds: Optional[RuleThresholds] = None) -> Tuple[InsightRule, ...]:
    """Builds the default rule registry, in evaluation order."""
    t = thresholds or DEFAULT_THRESHOLDS
    return tuple(
        InsightRule(id=rule_id, name=name, description=description, type=rule_type, evaluate=partial(fn, t=t))
        for rule_id, name, description, rule_type, fn in _RULE_DEFINITIONS
    )
