"""Expand permalink patterns into site URLs and output paths."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable

from .config import Config
from .content import PostDocument, slugify

REPEATED_SLASHES = re.compile(r"/{2,}")


class PermalinkError(ValueError):
    """Raised when post URLs collide or map outside the output directory."""


@dataclass(frozen=True, slots=True)
class UrlConflict:
    """A post whose URL is already claimed by an earlier post."""

    url: str
    document: PostDocument
    owner: PostDocument

    @property
    def message(self) -> str:
        return f"URL '{self.url}' is already produced by {self.owner.source_path}."


def post_url(document: PostDocument, config: Config) -> str:
    """Return the site-relative URL (leading slash) for a post.

    ``.`` and ``..`` segments are resolved against the site root, so the URL
    never climbs above it.
    """
    pattern = document.meta.permalink or config.permalink
    moment = document.meta.date
    replacements = {
        ":categories": "/".join(slugify(category) for category in document.meta.categories),
        ":year": f"{moment.year:04d}" if moment else "",
        ":month": f"{moment.month:02d}" if moment else "",
        ":day": f"{moment.day:02d}" if moment else "",
        ":title": document.slug,
        ":slug": document.slug,
    }
    url = pattern
    # Longest tokens first so ':categories' is not clipped by a shorter match.
    for token in sorted(replacements, key=len, reverse=True):
        url = url.replace(token, replacements[token])
    url = REPEATED_SLASHES.sub("/", f"/{url.lstrip('/')}")
    directory = url.endswith(("/", "/.."))
    url = posixpath.normpath(url)
    if url == "/":
        return url
    if directory or not PurePosixPath(url).suffix:
        url = f"{url}/"
    return url


def has_parent_segments(permalink: str) -> bool:
    return ".." in PurePosixPath(permalink).parts


def assign_urls(
    documents: Iterable[PostDocument],
    config: Config,
) -> tuple[dict[str, PostDocument], list[UrlConflict]]:
    """Map each URL to the first dated post producing it and collect the collisions."""
    owners: dict[str, PostDocument] = {}
    conflicts: list[UrlConflict] = []
    for document in documents:
        if document.meta.date is None:
            continue
        url = post_url(document, config)
        owner = owners.get(url)
        if owner is not None:
            conflicts.append(UrlConflict(url=url, document=document, owner=owner))
            continue
        owners[url] = document
    return owners, conflicts


def output_path_for_url(url: str, output_dir: Path) -> Path:
    """Map a site URL onto the file that serves it inside ``output_dir``."""
    relative = url.lstrip("/")
    if not relative or url.endswith("/"):
        target = output_dir / relative / "index.html"
    else:
        target = output_dir / relative
    try:
        target.resolve().relative_to(output_dir.resolve())
    except ValueError as exc:
        raise PermalinkError(f"URL '{url}' maps outside the output directory {output_dir}.") from exc
    return target


def absolute_url(url: str, base_url: str | None) -> str:
    if url.startswith(("http://", "https://")):
        return url
    normalized = f"/{url.lstrip('/')}"
    if base_url:
        return f"{base_url}{normalized}"
    return normalized
