"""Typed representations of front-matter posts and their body blocks."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


def parse_post_date(value: Any) -> datetime:
    """Coerce a front-matter date into an aware datetime.

    Accepts ``datetime``/``date`` objects produced by YAML as well as strings in
    the ``YYYY-MM-DD HH:MM:SS +HHMM`` form or ISO 8601. Values without a UTC
    offset are assumed to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = _parse_date_text(value)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def has_utc_offset(value: Any) -> bool:
    """Return whether a raw front-matter date states its UTC offset."""
    if isinstance(value, datetime):
        return value.tzinfo is not None
    if isinstance(value, str):
        try:
            return _parse_date_text(value).tzinfo is not None
        except ValueError:
            return False
    return False


def _parse_date_text(text: str) -> datetime:
    cleaned = text.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(cleaned)
    except ValueError:
        raise ValueError(f"Unrecognized date format: {text!r}") from None


class PostMeta(BaseModel):
    """Front-matter metadata for a post.

    Required keys are optional here so that incomplete posts can still be
    loaded and reported by the linter; the JSON schema enforces presence.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    layout: Optional[str] = Field(default=None, description="Layout template name.")
    title: Optional[str] = Field(default=None, description="Display title.")
    date: Optional[datetime] = Field(default=None, description="Publication timestamp.")
    author: Optional[str] = Field(default=None)
    categories: list[str] = Field(default_factory=list, description="Category tags.")
    tags: list[str] = Field(default_factory=list, description="Free-form tags.")
    comments: bool = Field(default=False, description="Whether comments are enabled.")
    published: bool = Field(default=True)
    summary: Optional[str] = Field(default=None, alias="excerpt")
    permalink: Optional[str] = Field(default=None)

    @field_validator("date", mode="before")
    def _coerce_date(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        return parse_post_date(value)

    @field_validator("categories", "tags", mode="before")
    def _split_terms(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            items = value.split()
        elif isinstance(value, (list, tuple)):
            items = [str(entry).strip() for entry in value]
        else:
            raise ValueError("must be a list or a space-separated string")
        seen: list[str] = []
        for item in items:
            if item and item not in seen:
                seen.append(item)
        return seen

    @field_validator("title", "author", "layout")
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class HeadingBlock(BaseModel):
    kind: Literal["heading"] = "heading"
    line: int
    level: int = Field(ge=1, le=6)
    text: str
    anchor: str


class ParagraphBlock(BaseModel):
    kind: Literal["paragraph"] = "paragraph"
    line: int
    text: str


class CodeBlock(BaseModel):
    kind: Literal["code"] = "code"
    line: int
    language: Optional[str] = None
    code: str
    fenced: bool = True


class ImageBlock(BaseModel):
    kind: Literal["image"] = "image"
    line: int
    src: str
    alt: str = ""
    title: Optional[str] = None


class OtherBlock(BaseModel):
    """Lists, quotes, tables, rules and raw HTML kept for ordering only."""

    kind: Literal["list", "quote", "table", "rule", "html"]
    line: int


ContentBlock = Annotated[
    Union[HeadingBlock, ParagraphBlock, CodeBlock, ImageBlock, OtherBlock],
    Field(discriminator="kind"),
]


class PostDocument(BaseModel):
    """Full representation of a post: front matter plus ordered body."""

    meta: PostMeta = Field(description="Validated front-matter metadata.")
    front_matter: dict[str, Any] = Field(
        default_factory=dict, description="Raw front-matter mapping as parsed from YAML."
    )
    body: str = Field(description="Raw markdown body.")
    source_path: str = Field(description="Path to the source file.")
    slug: str = Field(description="URL-friendly identifier.")
    body_offset: int = Field(default=1, ge=1, description="Source line of the first body line.")
    blocks: list[ContentBlock] = Field(default_factory=list)

    @field_validator("slug")
    def _normalize_slug(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("slug cannot be empty")
        return cleaned

    @property
    def title(self) -> str:
        return self.meta.title or self.slug

    @property
    def published(self) -> bool:
        return self.meta.published

    @property
    def outline(self) -> list[HeadingBlock]:
        return [block for block in self.blocks if isinstance(block, HeadingBlock)]

    @property
    def code_blocks(self) -> list[CodeBlock]:
        return [block for block in self.blocks if isinstance(block, CodeBlock)]

    @property
    def images(self) -> list[ImageBlock]:
        return [block for block in self.blocks if isinstance(block, ImageBlock)]
