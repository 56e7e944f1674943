"""
Shared fixtures: an in-memory registry per test.
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intelligence.database import make_engine
from intelligence.entity_resolution.resolver import ContactResolver
from intelligence.models import Base, SourceTag
from intelligence.records import RawContact
from intelligence.repository import ContactRegistry

TENANT = "team-1"
OTHER_TENANT = "team-2"


@pytest.fixture
def engine():
    engine = make_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry(db):
    return ContactRegistry(db)


@pytest.fixture
def resolver(registry):
    return ContactResolver(registry)


@pytest.fixture
def add_contact(resolver, registry):
    """Ingest one raw record and return the stored contact."""

    def _add(tenant_id=TENANT, source=SourceTag.SPREADSHEET, **fields):
        decision = resolver.apply(tenant_id, RawContact(source=source, **fields))
        registry.commit()
        return registry.get_contact(tenant_id, decision.contact_id)

    return _add
