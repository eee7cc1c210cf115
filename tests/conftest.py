"""Pytest fixtures for test suite."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from curation.core.config import get_settings
from curation.core.database import get_session
from curation.main import app
from curation.pipeline.cache import reset_refresh_locks
from curation.store.models import Cuisine, Location, Recipe, Tag
from curation.store.record_store import SQLRecordStore


BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)

# id, status, cuisine, location, tags, cook_time, difficulty
RECIPES = [
    ("s1", "published", "sichuan", "chengdu", ["spicy"], 20, 2),
    ("s2", "published", "sichuan", "chengdu", ["sour-spicy"], 45, 3),
    ("s3", "published", "sichuan", "chengdu", ["spicy", "children"], 30, 1),
    ("s4", "published", "sichuan", "chengdu", ["breakfast", "steam"], 15, 1),
    ("s5", "published", "sichuan", None, ["breakfast"], None, None),
    ("s6", "pending", "sichuan", "chengdu", ["spicy"], 25, 2),
    ("s7", "pending", "sichuan", None, [], 50, 4),
    ("s8", "draft", "sichuan", "chengdu", ["steam"], 35, 2),
    ("s9", "archived", "sichuan", "chengdu", ["spicy"], 10, 1),
    ("c1", "published", "cantonese", "guangzhou", ["breakfast", "steam"], 25, 2),
    ("c2", "published", "cantonese", "guangzhou", [], 60, 5),
    ("c3", "pending", "cantonese", "guangzhou", ["steam"], 40, 3),
    ("n1", "published", None, None, ["spicy"], None, None),
]

TAGS = [
    ("breakfast", "Breakfast", "scene"),
    ("steam", "Steamed", "method"),
    ("spicy", "Spicy", "taste"),
    ("sour-spicy", "Sour & Spicy", "taste"),
    ("children", "For Children", "crowd"),
]

ACTIVE_RECIPE_IDS = {r[0] for r in RECIPES if r[1] != "archived"}


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Fresh settings and refresh locks for every test."""
    get_settings.cache_clear()
    reset_refresh_locks()
    yield
    get_settings.cache_clear()


@pytest.fixture(name="engine")
def engine_fixture():
    import curation.store.models  # noqa: F401

    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


def seed_catalog(session: Session) -> None:
    """Insert cuisines, locations, tags and recipes in every status."""
    session.add_all([
        Cuisine(id="sichuan", name="Sichuan", slug="sichuan"),
        Cuisine(id="cantonese", name="Cantonese", slug="cantonese"),
        Location(id="chengdu", name="Chengdu", slug="chengdu"),
        Location(id="guangzhou", name="Guangzhou", slug="guangzhou"),
    ])
    tags = {tag_id: Tag(id=tag_id, name=name, slug=tag_id, type=tag_type) for tag_id, name, tag_type in TAGS}
    session.add_all(tags.values())

    for i, (recipe_id, status, cuisine, location, tag_ids, cook_time, difficulty) in enumerate(RECIPES):
        created = BASE_TIME + timedelta(hours=i)
        session.add(
            Recipe(
                id=recipe_id,
                title=f"Recipe {recipe_id}",
                status=status,
                cuisine_id=cuisine,
                location_id=location,
                cook_time=cook_time,
                difficulty=difficulty,
                created_at=created,
                updated_at=created,
                tags=[tags[t] for t in tag_ids],
            )
        )
    session.commit()


@pytest.fixture(name="seeded_session")
def seeded_session_fixture(session):
    seed_catalog(session)
    return session


@pytest.fixture
def store(seeded_session) -> SQLRecordStore:
    """Record store over the seeded catalog."""
    return SQLRecordStore(seeded_session)


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture(name="client")
def client_fixture(engine):
    with Session(engine) as session:
        seed_catalog(session)

    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def custom_rules() -> dict:
    """Sichuan recipes that are spicy or sour-spicy, never for children."""
    return {
        "mode": "custom",
        "groups": [
            {"logic": "AND", "conditions": [{"field": "cuisineId", "operator": "eq", "value": "sichuan"}]},
            {
                "logic": "OR",
                "conditions": [
                    {"field": "tag", "operator": "eq", "value": "spicy", "tagType": "taste"},
                    {"field": "tag", "operator": "eq", "value": "sour-spicy", "tagType": "taste"},
                ],
            },
        ],
        "exclude": [{"field": "tag", "operator": "eq", "value": "children", "tagType": "crowd"}],
    }


@pytest.fixture
def active_ids() -> set[str]:
    """Ids of every seeded recipe that is not archived."""
    return set(ACTIVE_RECIPE_IDS)
