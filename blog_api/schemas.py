from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Base schema serialised with camelCase keys for the web client."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class CategoryOut(CamelModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None


class ArticleOut(CamelModel):
    id: str
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    author: str
    category: Optional[CategoryOut] = None
    published_at: Optional[datetime] = None
    views: int = 0
    likes: int = 0
    image_url: Optional[str] = None
    sources: List[str] = []
    reading_time: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("sources", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or []


class ArticleQuickHit(CamelModel):
    id: str
    title: str
    slug: str


class ArticleCreate(CamelModel):
    title: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    content: str = Field(min_length=1)
    excerpt: str = Field(min_length=1)
    category: str = Field(min_length=1, description="Category slug")
    image_url: Optional[str] = None
    sources: Optional[List[str]] = None
    reading_time: Optional[int] = Field(default=None, ge=1)

    @field_validator("title", "slug", "content", "excerpt", "category")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CountOut(BaseModel):
    count: int


class MessageOut(BaseModel):
    message: str


class LikeToggleOut(BaseModel):
    message: str
    likes: int
    liked: bool


class LikeStatusOut(BaseModel):
    liked: bool


class LoginRequest(BaseModel):
    password: Optional[str] = None


class AuthCheckOut(CamelModel):
    is_admin: bool
