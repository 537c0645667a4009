"""Blog generation pipeline: scrape a news page, have the model write, publish.

Unlike strategy processing, an unparseable model reply aborts the run: a
half-formed article is worse than none.
"""

import logging
import random
import re
import string
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.config import BlogConfig
from api.models.blog import BLOG_CATEGORIES, DEFAULT_CATEGORY, BlogPost
from api.services.ai_gateway import AIGateway
from api.services.response_parser import ResponseParseError, parse_fenced_json
from api.services.scraper import FirecrawlScraper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewsSource:
    url: str
    topic: str


FINANCIAL_SOURCES: tuple[NewsSource, ...] = (
    NewsSource("https://www.tickertape.in/market-mood-index", "Indian Market Mood & Sentiment"),
    NewsSource("https://www.tickertape.in/screener/equity/prebuilt/top-gainers-today-BSE-652", "Top Gainers Today"),
    NewsSource("https://www.moneycontrol.com/stocksmarketsindia/", "Indian Stock Market Overview"),
    NewsSource("https://economictimes.indiatimes.com/markets", "Market News & Analysis"),
    NewsSource("https://www.investopedia.com/markets-news-4427704", "Global Market News"),
)
DEFAULT_SOURCE_URL = FINANCIAL_SOURCES[0].url

_SYSTEM_PROMPT = """You are an expert financial journalist and SEO content writer for QuantMentor, a professional trading platform. Write engaging, data-driven blog posts about stock markets, trading strategies, and financial analysis.

Your articles must:
- Be between 800-1500 words
- Include specific data points, numbers, and statistics from the source material
- Have clear actionable insights for traders
- Use professional yet accessible language
- Include relevant keywords naturally for SEO
- NOT give direct buy/sell recommendations (add disclaimers)

Return ONLY valid JSON with this exact structure:
{
  "title": "SEO-optimized title under 60 chars",
  "slug": "url-friendly-slug-with-date",
  "excerpt": "Compelling 150-char summary for meta description",
  "content": "Full markdown article with ## headings, bullet points, bold text",
  "category": "one of: market-analysis, trading-strategies, stock-picks, crypto, global-markets, education",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
  "meta_title": "SEO title under 60 chars",
  "meta_description": "Meta description under 160 chars",
  "reading_time_minutes": 5
}"""

_USER_PROMPT_TEMPLATE = """Today is {today}. Topic: "{topic}". Source page title: "{page_title}".

Here is the latest financial data scraped from {url}:

{content}

Write a comprehensive, SEO-optimized blog article based on this data. Make it timely, data-driven, and valuable for traders."""

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class BlogPublishError(Exception):
    """Post could not be stored (including a second slug collision)."""


def pick_source(
    roll: float,
    topic: Optional[str] = None,
    default_url: str = DEFAULT_SOURCE_URL,
) -> NewsSource:
    """Choose what to write about.

    A caller topic is paired with the default reference URL; otherwise
    ``roll`` in [0, 1) selects one of FINANCIAL_SOURCES uniformly.
    """
    if topic:
        return NewsSource(default_url, topic)
    index = min(int(roll * len(FINANCIAL_SOURCES)), len(FINANCIAL_SOURCES) - 1)
    return FINANCIAL_SOURCES[max(index, 0)]


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")


def dated_slug(slug: str, today: date) -> str:
    """Append -YYYYMMDD unless the slug already carries today's date token."""
    token = today.strftime("%Y%m%d")
    return slug if token in slug else f"{slug}-{token}"


def _random_suffix(length: int = 4) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def _is_unique_violation(err: IntegrityError) -> bool:
    orig = err.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == "23505":
        return True
    return "unique" in str(orig).lower()


class BlogPipeline:
    """Scrape -> write -> publish one BlogPost."""

    def __init__(
        self,
        db: Session,
        gateway: AIGateway,
        scraper: FirecrawlScraper,
        config: Optional[BlogConfig] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.scraper = scraper
        self.config = config or BlogConfig()

    def generate(
        self,
        topic: Optional[str] = None,
        roll: Optional[float] = None,
        today: Optional[date] = None,
    ) -> BlogPost:
        self.scraper.require_configured()
        self.gateway.require_configured()

        if roll is None:
            roll = random.random()
        today = today or date.today()

        source = pick_source(roll, topic, self.config.default_source_url)
        logger.info("Scraping: %s Topic: %s", source.url, source.topic)
        page = self.scraper.scrape(source.url)

        article = self._write_article(source, page.markdown, page.title or source.topic, today)
        slug = dated_slug(article["slug"], today)
        return self._publish(article, slug, source)

    def _write_article(self, source: NewsSource, markdown: str, page_title: str, today: date) -> dict:
        user_prompt = _USER_PROMPT_TEMPLATE.format(
            today=today.isoformat(),
            topic=source.topic,
            page_title=page_title,
            url=source.url,
            content=(markdown or "")[: self.config.max_source_chars],
        )
        content = self.gateway.complete(
            [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            model=self.config.model,
            temperature=0.7,
            operation="blog generation",
        )
        logger.info("AI response length: %d", len(content))

        try:
            blog = parse_fenced_json(content)
        except ResponseParseError as e:
            logger.error("JSON parse error: %s Content: %s", e, content[:500])
            raise ResponseParseError("Failed to parse AI response as JSON") from e

        title = str(blog.get("title") or "").strip()
        if not title:
            raise ResponseParseError("AI response is missing a title")
        blog["title"] = title
        blog["slug"] = slugify(str(blog.get("slug") or "")) or slugify(title)
        return blog

    def _build_post(self, blog: dict, slug: str, source: NewsSource) -> BlogPost:
        category = blog.get("category")
        if category not in BLOG_CATEGORIES:
            category = DEFAULT_CATEGORY
        tags = blog.get("tags")
        excerpt = str(blog.get("excerpt") or "")
        reading_time = blog.get("reading_time_minutes")

        return BlogPost(
            title=blog["title"],
            slug=slug,
            excerpt=excerpt,
            content=str(blog.get("content") or ""),
            category=category,
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            meta_title=str(blog.get("meta_title") or blog["title"]),
            meta_description=str(blog.get("meta_description") or excerpt),
            reading_time_minutes=reading_time if isinstance(reading_time, int) and reading_time > 0 else 5,
            source_urls=[source.url],
            is_published=True,
            published_at=datetime.now(),
        )

    def _publish(self, blog: dict, slug: str, source: NewsSource) -> BlogPost:
        post = self._build_post(blog, slug, source)
        try:
            self._insert(post)
            return post
        except IntegrityError as e:
            self.db.rollback()
            if not _is_unique_violation(e):
                logger.error("DB error: %s", e)
                raise BlogPublishError(f"DB insert failed: {e.orig}") from e
            logger.warning("Slug conflict on %s, retrying with suffix", slug)

        retry = self._build_post(blog, f"{slug}-{_random_suffix()}", source)
        try:
            self._insert(retry)
        except IntegrityError as e:
            self.db.rollback()
            logger.error("DB error on retry: %s", e)
            raise BlogPublishError(f"DB insert failed: {e.orig}") from e
        return retry

    def _insert(self, post: BlogPost) -> None:
        self.db.add(post)
        self.db.commit()
        self.db.refresh(post)
        logger.info("Published blog post %s (%s)", post.id, post.slug)
