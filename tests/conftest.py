"""Shared fixtures for Rankdesk tests."""

import datetime

import pytest

from rankdesk.database import get_engine, get_session_factory, init_db
from rankdesk.models import App, Brand, Platform, RankTracker


@pytest.fixture
def session():
    """A session bound to a fresh in-memory SQLite database."""
    engine = get_engine("sqlite:///:memory:")
    init_db(engine)
    session = get_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def brand(session):
    brand = Brand(name="BrandA", domain="branda.com")
    session.add(brand)
    session.commit()
    return brand


@pytest.fixture
def app(session, brand):
    app = App(brand_id=brand.id, name="Brand App", platform=Platform.IOS)
    session.add(app)
    session.commit()
    return app


@pytest.fixture
def tracker(session):
    tracker = RankTracker(keyword="apostille service", country="us", domain="branda.com")
    session.add(tracker)
    session.commit()
    return tracker


@pytest.fixture
def today():
    return datetime.date(2025, 9, 16)
