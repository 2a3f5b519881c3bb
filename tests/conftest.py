import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from admin_browser.admin.registry import ModelRegistry, get_registry
from admin_browser.api.main import create_app
from admin_browser.db.database import get_db
from admin_browser.db.repository import RepositoryFactory
from admin_browser.utils.settings import refresh_admin_config_cache
from tests.fixtures import catalog

_ADMIN_ENV = [
    "ADMIN_PAGINATE_LIMIT",
    "ADMIN_ASSOCIATION_LIMIT",
    "ADMIN_DELETABLE",
    "ADMIN_URL_PREFIX",
    "ADMIN_DEFAULT_REDIRECT",
    "ADMIN_MODELS",
    "ADMIN_CREATE_SCHEMA",
]


@pytest.fixture(autouse=True)
def _admin_env(monkeypatch):
    """Clear admin env + cached config for each test to avoid cross-contamination."""
    for name in _ADMIN_ENV:
        monkeypatch.delenv(name, raising=False)
    refresh_admin_config_cache()
    yield
    refresh_admin_config_cache()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    catalog.Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry():
    reg = ModelRegistry()
    reg.register_module("tests.fixtures.catalog", "catalog")
    return reg


@pytest.fixture
def repositories(db, registry):
    return RepositoryFactory(db, registry)


@pytest.fixture
def seeded(db):
    """Two categories, one supplier, two tags, one author and two products."""
    books = catalog.Category(name="Books")
    games = catalog.Category(name="Games")
    acme = catalog.Supplier(code="ACME")
    red = catalog.Tag(label="red")
    blue = catalog.Tag(label="blue")
    ann = catalog.Author(name="Ann")
    db.add_all([books, games, acme, red, blue, ann])
    db.flush()
    novel = catalog.Product(name="Novel", category=books, supplier=acme, tags=[red])
    novel.reviews.append(catalog.Review(body="Great read", author=ann))
    novel.detail = catalog.ProductDetail(notes="Hardcover")
    chess = catalog.Product(name="Chess Set", category=games)
    db.add_all([novel, chess])
    db.commit()
    return {
        "books": books.id,
        "games": games.id,
        "acme": acme.id,
        "red": red.id,
        "blue": blue.id,
        "ann": ann.id,
        "novel": novel.id,
        "chess": chess.id,
    }


@pytest.fixture
def client(db, registry):
    app = create_app(registry)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
