"""Tests for the Firecrawl scraper client."""

from unittest.mock import MagicMock

import pytest
import requests

from api.config import ConfigurationError, ScraperConfig
from api.services.scraper import FirecrawlScraper, ScraperError


def _response(ok=True, status=200, payload=None, text=""):
    resp = MagicMock()
    resp.ok = ok
    resp.status_code = status
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def scraper(session):
    return FirecrawlScraper(ScraperConfig(api_key="fc-key", base_url="https://fc.test/v1/"), session)


class TestScrape:
    def test_request_shape(self, scraper, session):
        session.post.return_value = _response(payload={
            "success": True,
            "data": {"markdown": "# Nifty", "metadata": {"title": "Markets"}},
        })

        page = scraper.scrape("https://www.moneycontrol.com/stocksmarketsindia/")

        assert page.markdown == "# Nifty"
        assert page.title == "Markets"
        args, kwargs = session.post.call_args
        assert args[0] == "https://fc.test/v1/scrape"
        assert kwargs["headers"]["Authorization"] == "Bearer fc-key"
        assert kwargs["json"] == {
            "url": "https://www.moneycontrol.com/stocksmarketsindia/",
            "formats": ["markdown"],
            "onlyMainContent": True,
        }

    def test_top_level_markdown(self, scraper, session):
        session.post.return_value = _response(payload={"markdown": "plain"})
        page = scraper.scrape("https://example.test")
        assert page.markdown == "plain"
        assert page.title == ""

    def test_missing_markdown_is_empty(self, scraper, session):
        session.post.return_value = _response(payload={"success": True, "data": {}})
        assert scraper.scrape("https://example.test").markdown == ""

    def test_non_2xx(self, scraper, session):
        session.post.return_value = _response(ok=False, status=402, text="Payment required")
        with pytest.raises(ScraperError, match="Failed to scrape financial data"):
            scraper.scrape("https://example.test")

    def test_transport_error(self, scraper, session):
        session.post.side_effect = requests.ConnectionError("boom")
        with pytest.raises(ScraperError):
            scraper.scrape("https://example.test")

    def test_non_json_body(self, scraper, session):
        session.post.return_value = _response(payload=ValueError("no json"))
        with pytest.raises(ScraperError):
            scraper.scrape("https://example.test")

    def test_missing_key(self, session):
        scraper = FirecrawlScraper(ScraperConfig(api_key=""), session)
        with pytest.raises(ConfigurationError, match="FIRECRAWL_API_KEY not configured"):
            scraper.scrape("https://example.test")
        session.post.assert_not_called()
