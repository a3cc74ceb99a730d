"""Render and write post pages and the post index."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from .config import Config
from .content import PostDocument
from .layouts import LayoutLoader
from .markdown import render_markdown
from .permalinks import PermalinkError, absolute_url, assign_urls, output_path_for_url, post_url

logger = logging.getLogger(__name__)

INDEX_LAYOUT = "index"


@dataclass(slots=True)
class PageWriteResult:
    """Pages written by a build and stale pages removed from earlier builds."""

    written: list[Path] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RenderedPage:
    """A rendered HTML page and the URL it is served from."""

    url: str
    path: Path
    html: str


def publishable(documents: Iterable[PostDocument]) -> list[PostDocument]:
    """Published, dated posts ordered newest first."""
    selected = [doc for doc in documents if doc.published and doc.meta.date is not None]
    selected.sort(key=lambda doc: doc.slug)
    selected.sort(key=lambda doc: doc.meta.date, reverse=True)  # type: ignore[arg-type, return-value]
    return selected


def format_display_date(value: datetime | None) -> str:
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"


class PostPageRenderer:
    """Turn post documents into complete HTML pages through their layouts."""

    def __init__(self, config: Config, layouts: LayoutLoader | None = None) -> None:
        self._config = config
        self._layouts = layouts or LayoutLoader(config.layouts_dir)

    @property
    def layouts(self) -> LayoutLoader:
        return self._layouts

    def url_for(self, document: PostDocument) -> str:
        return post_url(document, self._config)

    def render(self, document: PostDocument) -> RenderedPage:
        """Render a single post; the same input always yields the same bytes."""
        url = self.url_for(document)
        layout = document.meta.layout or self._config.default_layout
        context = self._base_context(with_feed=True)
        context["page"] = self._page_context(document, url)
        context["content"] = render_markdown(document.body).strip()
        context["outline"] = [
            {"level": heading.level, "text": heading.text, "anchor": heading.anchor}
            for heading in document.outline
        ]
        html = self._layouts.render(layout, context)
        return RenderedPage(url=url, path=output_path_for_url(url, self._config.output_dir), html=html)

    def render_index(self, documents: Sequence[PostDocument]) -> RenderedPage:
        """Render the landing page listing published posts."""
        posts = publishable(documents)
        context = self._base_context(with_feed=bool(posts))
        context["posts"] = [self._page_context(document, self.url_for(document)) for document in posts]
        html = self._layouts.render(INDEX_LAYOUT, context)
        return RenderedPage(url="/", path=self._config.output_dir / "index.html", html=html)

    def _base_context(self, *, with_feed: bool) -> dict[str, Any]:
        site = self._config.site
        feed_url = None
        if with_feed and self._config.feeds.enabled:
            feed_url = absolute_url(self._config.feeds.filename, site.base_url)
        return {
            "site": {
                "title": site.title,
                "description": site.description,
                "base_url": site.base_url or "",
                "language": site.language,
            },
            "feed_url": feed_url,
        }

    def _page_context(self, document: PostDocument, url: str) -> dict[str, Any]:
        meta = document.meta
        return {
            "title": document.title,
            "slug": document.slug,
            "url": url,
            "absolute_url": absolute_url(url, self._config.site.base_url),
            "layout": meta.layout or self._config.default_layout,
            "date_iso": meta.date.isoformat() if meta.date else "",
            "date_display": format_display_date(meta.date),
            "author": meta.author or "",
            "categories": list(meta.categories),
            "tags": list(meta.tags),
            "comments": meta.comments,
            "summary": meta.summary or "",
            "extra": {key: meta.extra[key] for key in sorted(meta.extra)},
        }


def write_post_pages(
    documents: Iterable[PostDocument],
    config: Config,
    *,
    renderer: PostPageRenderer | None = None,
    previous_paths: set[Path] | None = None,
) -> PageWriteResult:
    """Render every published post plus the index and write them under ``output_dir``.

    Pages written by an earlier build but no longer produced are removed.
    Raises ``PermalinkError`` when two posts would write the same URL.
    """
    active = renderer or PostPageRenderer(config)
    posts = publishable(documents)
    _, conflicts = assign_urls(posts, config)
    if conflicts:
        conflict = conflicts[0]
        raise PermalinkError(f"{conflict.document.source_path}: {conflict.message}")
    result = PageWriteResult()

    for document in posts:
        page = active.render(document)
        _write_page(page)
        result.written.append(page.path)

    index_page = active.render_index(posts)
    _write_page(index_page)
    result.written.append(index_page.path)

    if previous_paths:
        result.pruned = prune_stale_pages(previous_paths - set(result.written), config.output_dir)
    return result


def prune_stale_pages(paths: Iterable[Path], output_dir: Path) -> list[Path]:
    """Delete stale page files and any directories they leave empty."""
    removed: list[Path] = []
    root = output_dir.resolve()
    for path in sorted(paths, key=lambda p: len(p.parts), reverse=True):
        if not path.is_file():
            continue
        path.unlink()
        removed.append(path)
        parent = path.parent
        while root in parent.resolve().parents and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
    if removed:
        logger.info("Removed %d stale page(s) from %s.", len(removed), output_dir)
    return removed


def _write_page(page: RenderedPage) -> None:
    page.path.parent.mkdir(parents=True, exist_ok=True)
    page.path.write_text(page.html, encoding="utf-8")
