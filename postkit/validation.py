"""Schema validation helpers and lint diagnostics for posts."""

from __future__ import annotations

import importlib
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, auto
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Protocol, Sequence, cast
from urllib.parse import unquote, urlsplit


class _Validator(Protocol):
    def iter_errors(self, instance: Any) -> Iterator[Any]:
        ...


ValidatorFactory = Callable[[Any], _Validator]

_jsonschema = importlib.import_module("jsonschema")
Draft202012Validator = cast(ValidatorFactory, getattr(_jsonschema, "Draft202012Validator"))

from .config import Config
from .content import FrontMatterError, PostDocument, load_post
from .content.models import has_utc_offset
from .layouts import LayoutLoader
from .markdown import heading_anchors
from .permalinks import assign_urls, has_parent_segments
from .structure import LinkReference, check_heading_hierarchy, extract_links, scan_fences

SCHEMA_PACKAGE = "postkit.schemas"
FRONT_MATTER_SCHEMA_NAME = "post_front_matter.schema.json"
SUPPORTED_SUFFIXES = {".md", ".markdown", ".mdown", ".mkd"}
REQUIRED_PROPERTY_RE = re.compile(r"^'([^']+)' is a required property")


class DocumentValidationError(ValueError):
    """Raised when a post's front matter fails schema validation."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class IssueSeverity(Enum):
    """Severity level for lint issues."""

    ERROR = auto()
    WARNING = auto()


@dataclass(slots=True)
class DocumentIssue:
    """Represents a lint finding for a post."""

    slug: str
    source_path: str
    message: str
    severity: IssueSeverity
    pointer: str | None = None


@dataclass(slots=True)
class LintReport:
    """Aggregate lint results for a workspace."""

    issues: list[DocumentIssue] = field(default_factory=list)
    document_count: int = 0
    external_links: list[LinkReference] = field(default_factory=list)

    def add(self, issue: DocumentIssue) -> None:
        self.issues.append(issue)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity is IssueSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity is IssueSeverity.WARNING)


def validate_document(document: PostDocument) -> None:
    """Validate a post's front matter against the bundled JSON schema."""
    errors = _schema_errors(document)
    if errors:
        pointer, message = errors[0]
        text = f"{document.source_path}: {message}"
        if pointer:
            text += f" (at {pointer})"
        raise DocumentValidationError(text, path=pointer)


def lint_document(
    document: PostDocument,
    config: Config,
    *,
    layouts: set[str] | None = None,
    known_urls: set[str] | None = None,
) -> list[DocumentIssue]:
    """Run lint checks against a single post."""
    issues: list[DocumentIssue] = []

    def report(message: str, severity: IssueSeverity, pointer: str | None = None) -> None:
        issues.append(
            DocumentIssue(
                slug=document.slug,
                source_path=document.source_path,
                message=message,
                severity=severity,
                pointer=pointer,
            )
        )

    for pointer, message in _schema_errors(document):
        report(message, IssueSeverity.ERROR, pointer)

    layout = document.meta.layout
    if layout and layouts is not None and layout not in layouts:
        available = ", ".join(sorted(layouts)) or "none"
        report(
            f"Layout '{layout}' does not exist (available: {available}).",
            IssueSeverity.ERROR,
            "front_matter.layout",
        )

    raw_date = document.front_matter.get("date")
    if config.lint.require_utc_offset and raw_date is not None and not has_utc_offset(raw_date):
        report(
            f"Date '{raw_date}' has no UTC offset; UTC is assumed.",
            IssueSeverity.WARNING,
            "front_matter.date",
        )

    permalink = document.meta.permalink
    if permalink and has_parent_segments(permalink):
        report(
            f"Permalink '{permalink}' contains '..' segments; pages must stay inside the site.",
            IssueSeverity.ERROR,
            "front_matter.permalink",
        )

    if not document.published:
        report(
            "Post is unpublished (published: false) and will not be rendered.",
            IssueSeverity.WARNING,
            "front_matter.published",
        )

    for fence in scan_fences(document.body, line_offset=document.body_offset):
        if not fence.closed:
            report(
                f"Fenced code block opened with '{fence.marker * fence.length}' is never closed.",
                IssueSeverity.ERROR,
                f"body:L{fence.start_line}",
            )
        elif fence.language is None and config.lint.require_code_language:
            report(
                "Fenced code block has no language tag.",
                IssueSeverity.WARNING,
                f"body:L{fence.start_line}",
            )

    for skip in check_heading_hierarchy(document.outline, base_level=config.lint.base_heading_level):
        report(skip.message, IssueSeverity.ERROR, f"body:L{skip.line}")

    anchors = heading_anchors(document.body)
    for reference in extract_links(document.body, line_offset=document.body_offset):
        issues.extend(
            _lint_reference(document, reference, config, anchors=anchors, known_urls=known_urls)
        )

    return issues


def lint_workspace(config: Config) -> LintReport:
    """Collect posts and emit lint diagnostics for the configured workspace."""
    report = LintReport()
    documents: list[PostDocument] = []

    for path in iter_post_files(config.content_dir):
        try:
            document = load_post(path)
        except FrontMatterError as exc:
            report.add(
                DocumentIssue(
                    slug=path.stem,
                    source_path=str(path),
                    message=str(exc),
                    severity=IssueSeverity.ERROR,
                )
            )
            continue
        documents.append(document)

    report.document_count = len(documents)
    layouts = LayoutLoader(config.layouts_dir).available()
    known_urls = _collect_urls(documents, config, report)

    for document in documents:
        for issue in lint_document(document, config, layouts=layouts, known_urls=known_urls):
            report.add(issue)
        report.external_links.extend(
            reference
            for reference in extract_links(document.body, line_offset=document.body_offset)
            if reference.scope == "external"
        )

    return report


def iter_post_files(root: Path) -> Iterator[Path]:
    """Yield Markdown sources below ``root`` in a stable order."""
    if not root.exists():
        return
    directories = sorted(p for p in root.rglob("*") if p.is_dir())
    directories.insert(0, root)

    for directory in directories:
        for path in sorted(directory.iterdir()):
            if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES:
                yield path


def _collect_urls(
    documents: Sequence[PostDocument],
    config: Config,
    report: LintReport,
) -> set[str]:
    owners, conflicts = assign_urls((doc for doc in documents if doc.published), config)
    for conflict in conflicts:
        report.add(
            DocumentIssue(
                slug=conflict.document.slug,
                source_path=conflict.document.source_path,
                message=conflict.message,
                severity=IssueSeverity.ERROR,
                pointer="front_matter.permalink",
            )
        )
    return set(owners)


@lru_cache(maxsize=1)
def _get_front_matter_validator() -> _Validator:
    schema = _load_schema(FRONT_MATTER_SCHEMA_NAME)
    return Draft202012Validator(schema)


def _load_schema(name: str) -> dict[str, Any]:
    with resources.files(SCHEMA_PACKAGE).joinpath(name).open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Schema '{name}' must be a JSON object.")
    return cast(dict[str, Any], payload)


def _schema_errors(document: PostDocument) -> list[tuple[str | None, str]]:
    data = _jsonable(document.front_matter)
    validator = _get_front_matter_validator()
    errors = sorted(validator.iter_errors(data), key=lambda err: ([str(elem) for elem in err.path], err.message))
    results: list[tuple[str | None, str]] = []
    for error in errors:
        parts = [str(elem) for elem in error.path]
        if error.validator == "required":
            match = REQUIRED_PROPERTY_RE.match(error.message)
            if match:
                parts.append(match.group(1))
        pointer = ".".join(["front_matter", *parts]) if parts else None
        results.append((pointer, error.message))
    return results


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _lint_reference(
    document: PostDocument,
    reference: LinkReference,
    config: Config,
    *,
    anchors: set[str],
    known_urls: set[str] | None,
) -> Iterable[DocumentIssue]:
    pointer = f"body:L{reference.line}"

    def issue(message: str, severity: IssueSeverity) -> DocumentIssue:
        return DocumentIssue(
            slug=document.slug,
            source_path=document.source_path,
            message=message,
            severity=severity,
            pointer=pointer,
        )

    if reference.kind == "image" and config.lint.require_alt_text and not reference.text.strip():
        yield issue(f"Image '{reference.target}' is missing alt text.", IssueSeverity.WARNING)

    if _is_template(reference.target):
        return
    if reference.scope == "fragment":
        fragment = urlsplit(reference.target).fragment
        if fragment not in anchors:
            yield issue(
                f"Fragment '#{fragment}' does not match any heading anchor.",
                IssueSeverity.WARNING,
            )
        return
    if reference.scope != "internal":
        return
    if not _internal_target_exists(reference.target, document, config, known_urls):
        yield issue(
            f"Missing target for {reference.kind} '{reference.target}'.",
            IssueSeverity.ERROR,
        )


def _is_template(target: str) -> bool:
    # Liquid/Jinja placeholders are not concrete paths yet.
    return "{{" in target or "{%" in target


def _internal_target_exists(
    target: str,
    document: PostDocument,
    config: Config,
    known_urls: set[str] | None,
) -> bool:
    path = unquote(urlsplit(target).path)
    static_prefix = config.static_url_prefix

    if path.startswith("/"):
        if path in {"/", "/index.html", f"/{config.feeds.filename}"}:
            return True
        if path.startswith(static_prefix):
            return _within(config.static_dir, path[len(static_prefix) :])
        if known_urls is not None:
            normalized = path if path.endswith("/") or Path(path).suffix else f"{path}/"
            if normalized in known_urls or path.removesuffix("index.html") in known_urls:
                return True
        return _within(config.static_dir.parent, path.lstrip("/"))

    project_root = config.static_dir.parent
    source_dir = Path(document.source_path).parent.resolve()
    try:
        relative_to_root = (source_dir / path).resolve().relative_to(project_root.resolve())
    except ValueError:
        return _within(config.static_dir, path)
    return _within(project_root, relative_to_root.as_posix()) or _within(config.static_dir, path)


def _within(root: Path, relative: str) -> bool:
    base = root.resolve()
    candidate = (base / relative).resolve()
    try:
        candidate.relative_to(base)
    except ValueError:
        return False
    return candidate.exists()
