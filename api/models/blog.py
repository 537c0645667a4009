"""Blog post ORM model: AI-written market articles."""

from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


BLOG_CATEGORIES = (
    "market-analysis",
    "trading-strategies",
    "stock-picks",
    "crypto",
    "global-markets",
    "education",
)
DEFAULT_CATEGORY = "market-analysis"


class BlogPost(Base):
    __tablename__ = "blog_posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(200), unique=True)
    excerpt: Mapped[str] = mapped_column(Text, default="")
    content: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(40), default=DEFAULT_CATEGORY)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    meta_title: Mapped[str] = mapped_column(String(200), default="")
    meta_description: Mapped[str] = mapped_column(String(300), default="")
    reading_time_minutes: Mapped[int] = mapped_column(Integer, default=5)
    source_urls: Mapped[list] = mapped_column(JSON, default=list)
    cover_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("ix_blog_posts_category_published", "category", "published_at"),
    )
