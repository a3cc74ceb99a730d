"""Atom feed generation for published posts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Sequence, cast

from .config import Config
from .content import PostDocument
from .permalinks import absolute_url, post_url


@dataclass(slots=True)
class FeedEntry:
    """Normalized feed entry derived from a post."""

    slug: str
    title: str
    url: str
    author: str | None
    summary: str | None
    categories: list[str]
    published: datetime

    @property
    def identifier(self) -> str:
        return self.url


def generate_feed(config: Config, posts: Sequence[PostDocument]) -> Path | None:
    """Write an Atom feed for ``posts`` (already ordered newest first)."""
    settings = config.feeds
    if not settings.enabled:
        return None

    base_url = config.site.base_url
    destination = config.output_dir / settings.filename
    dated = [post for post in posts if post.meta.date is not None]
    entries = [_make_entry(post, config, base_url) for post in dated[: settings.limit]]
    if not entries:
        destination.unlink(missing_ok=True)
        return None

    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(_render_atom(config, entries), encoding="utf-8")
    return destination


def _make_entry(post: PostDocument, config: Config, base_url: str | None) -> FeedEntry:
    return FeedEntry(
        slug=post.slug,
        title=post.title,
        url=absolute_url(post_url(post, config), base_url),
        author=post.meta.author or config.site.author,
        summary=post.meta.summary,
        categories=list(post.meta.categories),
        published=cast(datetime, post.meta.date),
    )


def _render_atom(config: Config, entries: Sequence[FeedEntry]) -> str:
    site = config.site
    home_url = absolute_url("/", site.base_url)
    self_url = absolute_url(config.feeds.filename, site.base_url)
    # Feed timestamp is the newest entry date, never the build time.
    updated = max(entry.published for entry in entries)

    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<feed xmlns="http://www.w3.org/2005/Atom">',
        f"  <title>{escape(site.title)}</title>",
        f'  <link href="{escape(home_url)}" rel="alternate" />',
        f'  <link href="{escape(self_url)}" rel="self" />',
        f"  <updated>{_format_iso(updated)}</updated>",
        f"  <id>{escape(home_url)}</id>",
    ]
    if site.description:
        parts.append(f"  <subtitle>{escape(site.description)}</subtitle>")

    for entry in entries:
        parts.extend(
            [
                "  <entry>",
                f"    <title>{escape(entry.title)}</title>",
                f'    <link href="{escape(entry.url)}" />',
                f"    <id>{escape(entry.identifier)}</id>",
                f"    <published>{_format_iso(entry.published)}</published>",
                f"    <updated>{_format_iso(entry.published)}</updated>",
            ]
        )
        if entry.author:
            parts.append(f"    <author><name>{escape(entry.author)}</name></author>")
        if entry.summary:
            parts.append(f"    <summary>{escape(entry.summary)}</summary>")
        for category in entry.categories:
            parts.append(f'    <category term="{escape(category)}" />')
        parts.append("  </entry>")

    parts.append("</feed>")
    return "\n".join(parts) + "\n"


def _format_iso(value: datetime) -> str:
    normalized = value
    if normalized.tzinfo is None:
        normalized = normalized.replace(tzinfo=timezone.utc)
    return normalized.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
