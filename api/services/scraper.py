"""Firecrawl scraper client: renders a public page as markdown."""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from api.config import ConfigurationError, ScraperConfig, get_settings

logger = logging.getLogger(__name__)


class ScraperError(Exception):
    """Scrape request failed (transport error or non-2xx)."""


@dataclass
class ScrapedPage:
    url: str
    markdown: str
    title: str = ""


class FirecrawlScraper:
    """Calls Firecrawl's /scrape endpoint restricted to the page's main content."""

    def __init__(self, config: ScraperConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._session = session

    def require_configured(self) -> None:
        if not self.config.api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY not configured")

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def scrape(self, url: str) -> ScrapedPage:
        self.require_configured()
        logger.info("Scraping %s", url)
        try:
            resp = self.session.post(
                f"{self.config.base_url.rstrip('/')}/scrape",
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "url": url,
                    "formats": ["markdown"],
                    "onlyMainContent": True,
                },
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error("Firecrawl request failed for %s: %s", url, e)
            raise ScraperError("Failed to scrape financial data") from e

        if not resp.ok:
            logger.error("Firecrawl error %s for %s: %s", resp.status_code, url, resp.text[:500])
            raise ScraperError("Failed to scrape financial data")

        try:
            payload = resp.json()
        except ValueError as e:
            logger.error("Firecrawl returned non-JSON body for %s", url)
            raise ScraperError("Failed to scrape financial data") from e

        data = payload.get("data") or {}
        markdown = data.get("markdown") or payload.get("markdown") or ""
        metadata = data.get("metadata") or payload.get("metadata") or {}
        logger.info("Scraped content length: %d", len(markdown))
        return ScrapedPage(url=url, markdown=markdown, title=metadata.get("title") or "")


def get_scraper() -> FirecrawlScraper:
    """FastAPI dependency: scraper bound to the process settings."""
    return FirecrawlScraper(get_settings().scraper)
