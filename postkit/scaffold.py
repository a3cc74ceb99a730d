"""Utilities for scaffolding new posts."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Sequence

import yaml

from .config import Config
from .content import slugify

SLUG_CHARACTER = re.compile(r"[a-z0-9]")


class ScaffoldError(RuntimeError):
    """Raised when scaffolding cannot continue."""


@dataclass(slots=True)
class ScaffoldResult:
    """Details about filesystem writes performed during scaffolding."""

    created: list[Path] = field(default_factory=list)
    updated: list[Path] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def record(self, path: Path, existed: bool) -> None:
        if existed:
            self.updated.append(path)
        else:
            self.created.append(path)


def normalize_slug(raw: str) -> str:
    """Convert arbitrary user input into a filesystem-safe slug."""
    if not SLUG_CHARACTER.search(raw.lower()):
        raise ScaffoldError("Unable to derive a valid slug. Provide letters, numbers, or hyphens.")
    return slugify(raw)


def default_title(slug: str) -> str:
    """Generate a human-friendly title from a slug."""
    words = [word for word in slug.replace("_", "-").split("-") if word]
    return " ".join(word.capitalize() for word in words) or slug


def scaffold_post(
    config: Config,
    slug: str,
    title: str | None = None,
    *,
    author: str | None = None,
    categories: Sequence[str] = (),
    when: datetime | None = None,
    force: bool = False,
) -> ScaffoldResult:
    """Write ``<content_dir>/YYYY-MM-DD-<slug>.md`` with a complete front matter block."""
    slug = normalize_slug(slug)
    title = title.strip() if title else ""
    if not title:
        title = default_title(slug)
    author = (author or config.site.author or "").strip()
    if not author:
        raise ScaffoldError("No author given. Pass --author or set site.author in the config.")
    moment = (when or datetime.now().astimezone()).replace(microsecond=0)
    if moment.tzinfo is None:
        moment = moment.astimezone()

    post_path = config.content_dir / f"{moment:%Y-%m-%d}-{slug}.md"
    front_matter = {
        "layout": config.default_layout,
        "title": title,
        "date": f"{moment:%Y-%m-%d %H:%M:%S %z}",
        "author": author,
        "categories": list(categories) or ["uncategorized"],
        "comments": True,
    }
    existed = _write_text(post_path, _render_post(front_matter, title), force=force)

    result = ScaffoldResult()
    result.record(post_path, existed)
    result.notes.append(
        f"Reference images under '{config.static_url_prefix}' from "
        f"{config.static_dir.as_posix()} and run 'postkit lint' before building."
    )
    return result


def _render_post(front_matter: dict[str, object], title: str) -> str:
    header = yaml.safe_dump(front_matter, sort_keys=False, allow_unicode=True, default_flow_style=None)
    return (
        "---\n"
        f"{header}"
        "---\n"
        "\n"
        f"Introduce *{title}* here.\n"
        "\n"
        "## First section\n"
        "\n"
        "```text\n"
        "Fenced code blocks need a language tag.\n"
        "```\n"
    )


def _write_text(path: Path, content: str, *, force: bool) -> bool:
    path.parent.mkdir(parents=True, exist_ok=True)
    existed = path.exists()
    if existed and not force:
        raise ScaffoldError(f"Path already exists: {path}")
    path.write_text(content, encoding="utf-8")
    return existed
