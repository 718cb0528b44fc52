"""Pytest configuration and shared fixtures.

Set DATABASE_URL before any listingwatch import to use SQLite for tests.
Provides reusable fixtures: db session, listing factory, in-memory catalog.
"""
import os
import uuid
from typing import Any, Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Force SQLite before any listingwatch import
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///./test.db"
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("CATALOG_MODE", "sql")

from listingwatch.connectors.catalog import ListingRecord
from listingwatch.models import Base, Listing


# ── Database fixtures ────────────────────────────────────────────────

@pytest.fixture()
def db_engine():
    """In-memory SQLite engine with all tables."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(db_engine):
    """SQLAlchemy session bound to in-memory SQLite."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()


# ── Listing factory ──────────────────────────────────────────────────

def make_listing(**kwargs) -> Listing:
    """Factory for Listing with sensible defaults."""
    defaults: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "title": "Default listing",
        "url": None,
        "category": "asunnot",
        "status": "publish",
        "attributes": {},
    }
    defaults.update(kwargs)
    return Listing(**defaults)


def seed_listings(db, listings: list[Listing]):
    """Add listings to session and commit."""
    for listing in listings:
        db.add(listing)
    db.commit()


def make_record(listing_id: str, **kwargs) -> ListingRecord:
    defaults: dict[str, Any] = {"title": f"Listing {listing_id}", "category": "asunnot", "attributes": {}}
    defaults.update(kwargs)
    return ListingRecord(id=listing_id, **defaults)


# ── In-memory catalog ────────────────────────────────────────────────

class FakeCatalog:
    """CatalogSource over a list of records; can be told to fail on a page."""

    def __init__(self, records: Optional[list[ListingRecord]] = None, fail_on_page: Optional[int] = None):
        self.records = list(records or [])
        self.fail_on_page = fail_on_page
        self.calls: list[dict[str, Any]] = []

    def fetch_page(self, categories: Optional[Sequence[str]], status: Optional[str], page: int, page_size: int):
        self.calls.append({"categories": categories, "status": status, "page": page, "page_size": page_size})
        if self.fail_on_page is not None and page == self.fail_on_page:
            raise ConnectionError("catalog unavailable")
        rows = [
            r for r in self.records
            if (not categories or r.category in categories) and (status is None or r.status == status)
        ]
        start = (page - 1) * page_size
        return rows[start:start + page_size]

    def get_attributes(self, listing_id: str):
        for r in self.records:
            if r.id == listing_id:
                return r.attributes
        return None


@pytest.fixture()
def fake_catalog():
    return FakeCatalog()


# ── Markers ──────────────────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks slow tests")
    config.addinivalue_line("markers", "integration: marks integration tests")
    config.addinivalue_line("markers", "unit: marks unit tests")
