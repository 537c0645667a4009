"""Blog Pydantic schemas."""

from typing import Optional
from pydantic import BaseModel


class GenerateBlogRequest(BaseModel):
    topic: Optional[str] = None


class BlogPostResponse(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: str
    content: str
    category: str
    tags: list[str] = []
    meta_title: str
    meta_description: str
    reading_time_minutes: int
    source_urls: list[str] = []
    cover_image: Optional[str] = None
    is_published: bool
    published_at: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class BlogPostListItem(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: str
    category: str
    tags: list[str] = []
    reading_time_minutes: int
    published_at: Optional[str] = None
    cover_image: Optional[str] = None


class RelatedPost(BaseModel):
    id: int
    title: str
    slug: str
    category: str


class BlogPostDetail(BaseModel):
    post: BlogPostResponse
    related: list[RelatedPost] = []
