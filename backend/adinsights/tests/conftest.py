from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from adinsights import models  # noqa: F401
from adinsights.database import Base
from adinsights.insight_engine import InsightEngine
from adinsights.insight_models import AccountMetrics, CampaignData, InsightData
from adinsights.store import SqlAlchemyInsightStore

FROZEN_NOW = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return SqlAlchemyInsightStore(db_session)


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW


@pytest.fixture
def insight_engine(store, clock):
    return InsightEngine(store, clock=clock)


def make_data(campaigns=None, **account) -> InsightData:
    """Quiet account (no rule fires) with selected fields overridden."""
    base = dict(
        conversions=100.0,
        previous_conversions=100.0,
        cost=1000.0,
        previous_cost=1000.0,
        cpa=10.0,
        previous_cpa=10.0,
        roas=4.0,
        previous_roas=4.0,
        impression_share_lost_budget=0.0,
        impression_share_lost_rank=0.0,
    )
    base.update(account)
    return InsightData(
        account=AccountMetrics(**base),
        campaigns=list(campaigns or []),
        client_id="client-1",
        client_name="Acme",
        currency="EUR",
    )


def make_campaign(campaign_id="c1", **fields) -> CampaignData:
    base = dict(
        name=f"Campaign {campaign_id}",
        type="SEARCH",
        status="ENABLED",
        conversions=10.0,
        previous_conversions=10.0,
        cost=100.0,
        previous_cost=100.0,
    )
    base.update(fields)
    return CampaignData(id=campaign_id, **base)
