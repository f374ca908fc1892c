import os
import tempfile
import uuid

# DB voor de app-startup; tests zelf krijgen per test een eigen database
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{tempfile.gettempdir()}/lastmile-test-{uuid.uuid4().hex}.db",
)
os.environ.setdefault("OCR_ENDPOINT", "")
os.environ.setdefault("OCR_API_KEY", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from lastmile import models
from lastmile.db import Base, create_all, make_engine, make_session_factory
from lastmile.dependencies import get_ocr_client, get_preview_store, get_store
from lastmile.domain.models import PriceUnit
from lastmile.importers.preview_store import PreviewStore
from lastmile.repositories.rate_cards import RateCardStore

from factories import card_info, tier


@pytest.fixture
def anyio_backend():
    # Dwing anyio om alleen asyncio te gebruiken (geen Trio nodig)
    return "asyncio"


@pytest.fixture
async def store(tmp_path, anyio_backend):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path}/store.db", echo=False, poolclass=NullPool)
    await create_all(engine)
    yield RateCardStore(make_session_factory(engine))
    await engine.dispose()


@pytest.fixture
async def carrier(store):
    c = await store.create_carrier("DPD", "DPD Nederland")
    await store.create_zones(
        c.id,
        [
            {"zone_code": "Z1", "zone_name": "Randstad", "postal_prefixes": ["10", "11", "30"]},
            {"zone_code": "Z2", "zone_name": "Noord", "postal_prefixes": ["9"]},
            {"zone_code": "Z3", "zone_name": "Benelux", "countries": ["BE", "LU"]},
        ],
    )
    return c


@pytest.fixture
def standard_card(store, carrier):
    """Z1: 0-5 / 5-10 / 10-20 per shipment; Z2: 0-10 per kg."""

    async def _make(**kw):
        tiers = [
            tier("Z1", 0, 5, 5, 7, row=2),
            tier("Z1", 5, 10, 8, 11, row=3),
            tier("Z1", 10, 20, 12, 16, row=4),
            tier("Z2", 0, 10, "1.5", "2.25", row=5, unit=PriceUnit.PER_KG),
        ]
        return await store.create_rate_card_with_tiers(card_info(carrier.id, **kw), tiers)

    return _make


# ----------------------------------------------------
# HTTP
# ----------------------------------------------------


@pytest.fixture
def api_db(tmp_path):
    """Sync view on a fresh database; tables created up front, seed via ORM."""
    path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    yield path, sync_engine
    sync_engine.dispose()


@pytest.fixture
def seeded_carrier(api_db):
    _, sync_engine = api_db
    with Session(sync_engine) as s:
        carrier = models.Carrier(code="POSTNL", name="PostNL")
        s.add(carrier)
        s.flush()
        s.add_all(
            [
                models.Zone(carrier_id=carrier.id, zone_code="Z1", zone_name="Randstad",
                            postal_prefixes=["10"], countries=[], sort_order=0),
                models.Zone(carrier_id=carrier.id, zone_code="Z2", zone_name="Rest NL",
                            postal_prefixes=[], countries=["NL"], sort_order=1),
            ]
        )
        s.commit()
        return carrier.id


@pytest.fixture
def client(api_db):
    from lastmile.main import app

    path, _ = api_db
    engine = make_engine(f"sqlite+aiosqlite:///{path}", echo=False, poolclass=NullPool)
    test_store = RateCardStore(make_session_factory(engine))
    previews = PreviewStore(ttl_seconds=600, max_entries=50)

    app.dependency_overrides[get_store] = lambda: test_store
    app.dependency_overrides[get_preview_store] = lambda: previews
    app.dependency_overrides[get_ocr_client] = lambda: None
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
