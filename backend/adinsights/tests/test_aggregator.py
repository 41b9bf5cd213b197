import pytest

from adinsights.aggregator import aggregate_account_metrics, aggregate_campaigns, build_insight_data


def account_row(conversions, value, cost, lost_budget=None, lost_rank=None):
    metrics = {"conversions": str(conversions), "conversionsValue": str(value), "costMicros": str(int(cost * 1_000_000))}
    if lost_budget is not None:
        metrics["searchBudgetLostImpressionShare"] = str(lost_budget)
    if lost_rank is not None:
        metrics["searchRankLostImpressionShare"] = str(lost_rank)
    return {"metrics": metrics}


def campaign_row(campaign_id, conversions, cost, name=None, serving="ELIGIBLE", budget=None, recommended=None,
                 lost_budget=None):
    row = {
        "campaign": {
            "id": campaign_id,
            "name": name or f"Campaign {campaign_id}",
            "advertisingChannelType": "SEARCH",
            "status": "ENABLED",
            "servingStatus": serving,
        },
        "metrics": {"conversions": str(conversions), "costMicros": str(int(cost * 1_000_000))},
    }
    if budget is not None:
        row["campaignBudget"] = {"amountMicros": str(int(budget * 1_000_000))}
        if recommended is not None:
            row["campaignBudget"]["recommendedBudgetAmountMicros"] = str(int(recommended * 1_000_000))
    if lost_budget is not None:
        row["metrics"]["searchBudgetLostImpressionShare"] = str(lost_budget)
    return row


def test_account_metrics_sum_and_max_impression_share():
    totals = aggregate_account_metrics([
        account_row(10, 400, 100.0, lost_budget=0.1, lost_rank=0.35),
        account_row(5, 100, 50.0, lost_budget=0.2, lost_rank=0.05),
    ])
    assert totals["conversions"] == 15
    assert totals["conversions_value"] == 500
    assert totals["cost"] == pytest.approx(150.0)
    assert totals["impression_share_lost_budget"] == pytest.approx(20.0)
    assert totals["impression_share_lost_rank"] == pytest.approx(35.0)


def test_empty_rows_give_zero_totals():
    assert aggregate_account_metrics([])["cost"] == 0.0
    assert aggregate_campaigns([]) == []


def test_build_insight_data_derives_previous_period():
    data = build_insight_data(
        "client-1", "Acme", "EUR",
        account_current_rows=[account_row(10, 400, 100.0, lost_budget=0.2)],
        account_full_rows=[account_row(30, 900, 250.0)],
    )
    account = data.account
    assert account.conversions == 10
    assert account.previous_conversions == 20
    assert account.cost == pytest.approx(100.0)
    assert account.previous_cost == pytest.approx(150.0)
    assert account.cpa == pytest.approx(10.0)
    assert account.previous_cpa == pytest.approx(7.5)
    assert account.roas == pytest.approx(4.0)
    assert account.previous_roas == pytest.approx(500 / 150.0)
    assert account.impression_share_lost_budget == pytest.approx(20.0)
    assert data.client_id == "client-1" and data.currency == "EUR"


def test_ratios_are_zero_without_conversions_or_cost():
    data = build_insight_data(
        "client-1", "Acme", "",
        account_current_rows=[account_row(0, 0, 0.0)],
        account_full_rows=[{"metrics": {"conversions": "0", "costMicros": "0"}}],
    )
    assert data.account.cpa == 0.0
    assert data.account.roas == 0.0
    assert data.account.previous_cpa == 0.0
    assert data.account.previous_roas == 0.0
    assert data.currency == "EUR"


def test_campaigns_grouped_with_previous_period():
    current = [
        campaign_row("1", 3, 40.0, budget=20.0, lost_budget=0.25),
        campaign_row("1", 2, 10.0, budget=20.0),
        campaign_row("2", 0, 70.0, serving="ELIGIBLE_LIMITED", budget=10.0),
    ]
    full = [
        campaign_row("1", 8, 120.0),
        campaign_row("2", 1, 100.0),
    ]
    campaigns = aggregate_campaigns(current, full)
    assert [c.id for c in campaigns] == ["1", "2"]

    first, second = campaigns
    assert first.conversions == 5
    assert first.cost == pytest.approx(50.0)
    assert first.previous_conversions == 3
    assert first.previous_cost == pytest.approx(70.0)
    assert first.budget == pytest.approx(20.0)
    assert first.impression_share_lost_budget == pytest.approx(25.0)
    assert first.recommended_budget is None
    assert first.budget_limited is False

    assert second.budget_limited is True
    assert second.previous_cost == pytest.approx(30.0)


def test_recommended_budget_marks_campaign_limited():
    campaigns = aggregate_campaigns([campaign_row("9", 4, 30.0, budget=10.0, recommended=15.0)])
    assert campaigns[0].recommended_budget == pytest.approx(15.0)
    assert campaigns[0].budget_limited is True

    campaigns = aggregate_campaigns([campaign_row("9", 4, 30.0, budget=10.0, recommended=11.0)])
    assert campaigns[0].budget_limited is False


def test_campaign_missing_from_full_window_has_no_history():
    campaigns = aggregate_campaigns([campaign_row("new", 1, 5.0)], [campaign_row("other", 1, 5.0)])
    assert campaigns[0].previous_conversions == 0.0
    assert campaigns[0].previous_cost == 0.0


def test_previous_roas_is_zero_without_conversion_value_history():
    data = build_insight_data(
        "client-1", "Acme", "EUR",
        account_current_rows=[account_row(10, 400, 100.0)],
        account_full_rows=[{"metrics": {"conversions": "30", "costMicros": "250000000"}}],
    )
    assert data.account.previous_cost == pytest.approx(150.0)
    assert data.account.roas == pytest.approx(4.0)
    assert data.account.previous_roas == 0.0
