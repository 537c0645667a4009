"""Blog router: AI post generation and the public post feed."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from api.config import ConfigurationError, get_settings
from api.models.base import get_db
from api.models.blog import BlogPost
from api.schemas.blog import (
    BlogPostDetail, BlogPostListItem, BlogPostResponse, GenerateBlogRequest, RelatedPost,
)
from api.services.ai_gateway import AIGateway, AIGatewayError, AIRateLimitError, get_ai_gateway
from api.services.blog_pipeline import BlogPipeline, BlogPublishError
from api.services.response_parser import ResponseParseError
from api.services.scraper import FirecrawlScraper, ScraperError, get_scraper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["blog"])

_RELATED_LIMIT = 3


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def _post_response(p: BlogPost) -> BlogPostResponse:
    return BlogPostResponse(
        id=p.id,
        title=p.title,
        slug=p.slug,
        excerpt=p.excerpt,
        content=p.content,
        category=p.category,
        tags=p.tags or [],
        meta_title=p.meta_title,
        meta_description=p.meta_description,
        reading_time_minutes=p.reading_time_minutes,
        source_urls=p.source_urls or [],
        cover_image=p.cover_image,
        is_published=p.is_published,
        published_at=_iso(p.published_at),
        created_at=_iso(p.created_at) or "",
    )


def _failure(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=500)


def _published(db: Session):
    return (
        db.query(BlogPost)
        .filter(BlogPost.is_published.is_(True))
        .order_by(BlogPost.published_at.desc(), BlogPost.id.desc())
    )


@router.post("/generate-blog")
def generate_blog(
    req: Optional[GenerateBlogRequest] = None,
    db: Session = Depends(get_db),
    gateway: AIGateway = Depends(get_ai_gateway),
    scraper: FirecrawlScraper = Depends(get_scraper),
):
    """Scrape a financial news page and publish one AI-written post."""
    topic = req.topic if req else None
    pipeline = BlogPipeline(db, gateway, scraper, get_settings().blog)
    try:
        post = pipeline.generate(topic=topic)
    except AIRateLimitError:
        return JSONResponse(
            {"success": False, "error": "Rate limited, try again later"}, status_code=429,
        )
    except (ScraperError, ResponseParseError, AIGatewayError, ConfigurationError) as e:
        logger.error("generate-blog error: %s", e)
        return _failure(str(e))
    except BlogPublishError:
        logger.exception("generate-blog publish error")
        return _failure("Failed to publish blog post")
    except Exception:
        logger.exception("generate-blog error")
        return _failure("Failed to generate blog post")

    return {"success": True, "post": _post_response(post).model_dump()}


@router.get("/blog/posts", response_model=list[BlogPostListItem])
def list_posts(
    category: str = Query("", description="Filter by category slug"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Published posts, newest first."""
    q = _published(db)
    if category:
        q = q.filter(BlogPost.category == category)
    return [
        BlogPostListItem(
            id=p.id,
            title=p.title,
            slug=p.slug,
            excerpt=p.excerpt,
            category=p.category,
            tags=p.tags or [],
            reading_time_minutes=p.reading_time_minutes,
            published_at=_iso(p.published_at),
            cover_image=p.cover_image,
        )
        for p in q.limit(limit).all()
    ]


@router.get("/blog/posts/{slug}", response_model=BlogPostDetail)
def get_post(slug: str, db: Session = Depends(get_db)):
    """One published post plus a few others from the same category."""
    post = _published(db).filter(BlogPost.slug == slug).first()
    if not post:
        raise HTTPException(404, "Post not found")

    related = (
        _published(db)
        .filter(BlogPost.category == post.category, BlogPost.id != post.id)
        .limit(_RELATED_LIMIT)
        .all()
    )
    return BlogPostDetail(
        post=_post_response(post),
        related=[
            RelatedPost(id=r.id, title=r.title, slug=r.slug, category=r.category)
            for r in related
        ],
    )
