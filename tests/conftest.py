import os

# In-memory engine for the module-level api.models.base import
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.config import ConfigurationError
from api.models.base import Base, get_db
import api.models.strategy_bot  # noqa: F401
import api.models.backtest  # noqa: F401
import api.models.blog  # noqa: F401
from api.services.ai_gateway import get_ai_gateway
from api.services.scraper import ScrapedPage, get_scraper


class FakeGateway:
    """Stands in for AIGateway: canned replies, optional error, recorded calls."""

    def __init__(self):
        self.replies: list[str] = []
        self.chunks: list[bytes] = []
        self.error = None
        self.configured = True
        self.calls: list[dict] = []

    def require_configured(self):
        if not self.configured:
            raise ConfigurationError("AI gateway API key is not configured")

    def complete(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else ""

    def stream(self, messages, **kwargs):
        self.calls.append({"messages": messages, "stream": True, **kwargs})
        if self.error:
            raise self.error
        return (chunk for chunk in self.chunks)


class FakeScraper:
    def __init__(self):
        self.markdown = "# Markets\nNifty closed 0.8% higher."
        self.title = "Market Mood Index"
        self.error = None
        self.configured = True
        self.urls: list[str] = []

    def require_configured(self):
        if not self.configured:
            raise ConfigurationError("FIRECRAWL_API_KEY not configured")

    def scrape(self, url):
        self.urls.append(url)
        if self.error:
            raise self.error
        return ScrapedPage(url=url, markdown=self.markdown, title=self.title)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def scraper():
    return FakeScraper()


@pytest.fixture
def client(db, gateway, scraper):
    from api.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ai_gateway] = lambda: gateway
    app.dependency_overrides[get_scraper] = lambda: scraper
    yield TestClient(app)
    app.dependency_overrides.clear()
