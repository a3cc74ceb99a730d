"""Parse source files into `PostDocument` instances."""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..markdown import parse_blocks
from .models import PostDocument, PostMeta

FRONT_MATTER_DELIMITER = "---"
DATED_FILENAME_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<slug>.+)$")
SLUG_PATTERN = re.compile(r"[^a-z0-9\-]+")
WHITESPACE_PATTERN = re.compile(r"\s+")


class FrontMatterError(ValueError):
    """Raised when a markdown file has malformed front matter."""


def slugify(value: str) -> str:
    """Convert arbitrary text into a URL-safe slug."""
    text = value.strip().lower()
    text = WHITESPACE_PATTERN.sub("-", text)
    text = re.sub(r"_+", "-", text)
    text = SLUG_PATTERN.sub("-", text)
    text = re.sub(r"-{2,}", "-", text)
    return text.strip("-") or "post"


def load_post(path: str | Path) -> PostDocument:
    """Load a markdown file with YAML front matter into a post document."""
    source_path = Path(path)
    text = source_path.read_text(encoding="utf-8")
    return parse_post(text, source_path)


def parse_post(text: str, source_path: Path) -> PostDocument:
    """Parse post source text; ``source_path`` supplies the slug and fallback date."""
    front_matter, body, body_offset = split_front_matter(text, source_path)

    data = {str(key): value for key, value in front_matter.items()}
    filename_date, slug = _parse_filename(source_path)
    if data.get("date") in (None, "") and filename_date is not None:
        data["date"] = filename_date

    try:
        meta = PostMeta(**data)
    except ValidationError as exc:
        raise FrontMatterError(f"Invalid metadata in {source_path}: {_first_error(exc)}") from exc

    stripped_body = body.strip("\n")
    leading = len(body) - len(body.lstrip("\n"))
    offset = body_offset + leading

    return PostDocument(
        meta=meta,
        front_matter=front_matter,
        body=stripped_body,
        source_path=str(source_path),
        slug=slug,
        body_offset=offset,
        blocks=parse_blocks(stripped_body, line_offset=offset),
    )


def split_front_matter(text: str, source_path: Path | None = None) -> tuple[dict[str, Any], str, int]:
    """Split text into the front-matter mapping, the body, and the body's first line."""
    lines = text.splitlines()
    if not lines:
        return {}, "", 1
    if lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, text, 1

    location = f" in {source_path}" if source_path is not None else ""
    front_lines: list[str] = []
    for idx, line in enumerate(lines[1:], start=1):
        if line.strip() == FRONT_MATTER_DELIMITER:
            raw_front_matter = "\n".join(front_lines)
            body = "\n".join(lines[idx + 1 :])
            try:
                data = yaml.safe_load(raw_front_matter) or {}
            except yaml.YAMLError as exc:
                raise FrontMatterError(f"Malformed YAML front matter{location}: {exc}") from exc
            if not isinstance(data, dict):
                raise FrontMatterError(f"Front matter{location} must be a mapping of keys to values.")
            return data, body, idx + 2
        front_lines.append(line)
    raise FrontMatterError(f"Closing front matter delimiter '---' missing{location}.")


def _parse_filename(source_path: Path) -> tuple[date | None, str]:
    stem = source_path.stem
    match = DATED_FILENAME_RE.match(stem)
    if match is None:
        return None, slugify(stem)
    try:
        filename_date = date(int(match["year"]), int(match["month"]), int(match["day"]))
    except ValueError:
        return None, slugify(stem)
    return filename_date, slugify(match["slug"])


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
