"""Site verification utilities for postkit."""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple
from urllib.parse import unquote, urlsplit

from .articles import PostPageRenderer, publishable
from .content import PostDocument
from .structure import HeadingSkip, check_heading_hierarchy

HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}


@dataclass(slots=True)
class VerificationIssue:
    """Represents a problem discovered during site verification."""

    kind: str
    source: Path
    target: str
    message: str


@dataclass(slots=True)
class VerificationReport:
    """Aggregate verification results."""

    scanned_files: int
    issues: list[VerificationIssue] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.kind != "warning")

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.kind == "warning")


@dataclass(frozen=True, slots=True)
class RenderedHeading:
    level: int
    text: str
    line: int


@dataclass(slots=True)
class OutlineReport:
    """Title and heading structure recovered from rendered HTML."""

    title: str | None
    headings: list[RenderedHeading]
    skips: list[HeadingSkip]

    @property
    def section_titles(self) -> list[str]:
        return [heading.text for heading in self.headings]


class _ReferenceCollector(HTMLParser):
    """Collect href/src references from HTML content."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.references: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        attr_map = {name: value for name, value in attrs if value is not None}

        if tag in {"a", "link"} and "href" in attr_map:
            self.references.append((tag, "href", attr_map["href"]))
        if tag in {"img", "script", "iframe", "audio", "video", "source", "track", "embed"}:
            src = attr_map.get("src")
            if src:
                self.references.append((tag, "src", src))
        if tag in {"img", "source"} and "srcset" in attr_map:
            for candidate in _parse_srcset(attr_map["srcset"]):
                self.references.append((tag, "srcset", candidate))


class _OutlineCollector(HTMLParser):
    """Collect the document title and heading texts in document order."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title: str | None = None
        self.headings: list[RenderedHeading] = []
        self._capture: str | None = None
        self._buffer: list[str] = []
        self._line = 0

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        if self._capture is None and (tag == "title" or tag in HEADING_TAGS):
            self._capture = tag
            self._buffer = []
            self._line = self.getpos()[0]

    def handle_endtag(self, tag: str) -> None:
        if tag != self._capture:
            return
        text = " ".join("".join(self._buffer).split())
        if tag == "title":
            if self.title is None:
                self.title = text
        else:
            self.headings.append(RenderedHeading(level=int(tag[1]), text=text, line=self._line))
        self._capture = None

    def handle_data(self, data: str) -> None:
        if self._capture is not None:
            self._buffer.append(data)


def check_rendered_outline(html: str) -> OutlineReport:
    """Recover the page title and heading hierarchy from rendered HTML."""
    collector = _OutlineCollector()
    collector.feed(html)
    collector.close()
    headings = collector.headings
    skips = check_heading_hierarchy(headings)
    return OutlineReport(title=collector.title, headings=headings, skips=skips)


def verify_site(output_dir: Path) -> VerificationReport:
    """Verify links, asset references and heading structure within the rendered site."""
    output_dir = output_dir.resolve()
    html_files = sorted(output_dir.rglob("*.html"))
    issues: list[VerificationIssue] = []

    for html_file in html_files:
        try:
            html = html_file.read_text(encoding="utf-8")
        except OSError as exc:
            issues.append(
                VerificationIssue(
                    kind="error",
                    source=html_file,
                    target=str(html_file),
                    message=f"Unable to read HTML file: {exc}",
                )
            )
            continue

        issues.extend(_outline_issues(html_file, html))

        parser = _ReferenceCollector()
        parser.feed(html)

        for tag, attr, reference in parser.references:
            if _is_ignorable(reference):
                continue

            resolved_path, needs_index, special_issue = _resolve_reference(reference, html_file, output_dir)
            if special_issue:
                issues.append(
                    VerificationIssue(
                        kind=special_issue,
                        source=html_file,
                        target=reference,
                        message=f"Reference points outside the site bundle: '{reference}'",
                    )
                )
                continue

            if resolved_path is None or resolved_path.exists():
                continue

            if needs_index and (resolved_path / "index.html").exists():
                continue

            issues.append(
                VerificationIssue(
                    kind=_classify_issue(tag),
                    source=html_file,
                    target=reference,
                    message=f"Missing target for {tag} {attr} '{reference}'",
                )
            )

    return VerificationReport(scanned_files=len(html_files), issues=issues)


def check_reproducible(
    documents: Iterable[PostDocument],
    renderer: PostPageRenderer,
    *,
    compare_disk: bool = True,
) -> VerificationReport:
    """Render each published post twice and compare the bytes.

    With ``compare_disk`` set, the rendering is also compared with the file
    already present in the output directory.
    """
    issues: list[VerificationIssue] = []
    posts = publishable(documents)
    for document in posts:
        first = renderer.render(document)
        second = renderer.render(document)
        source = Path(document.source_path)
        if first.html.encode("utf-8") != second.html.encode("utf-8"):
            issues.append(
                VerificationIssue(
                    kind="nondeterministic",
                    source=source,
                    target=first.url,
                    message="Rendering the same source twice produced different output.",
                )
            )
            continue
        if not compare_disk:
            continue
        if not first.path.exists():
            issues.append(
                VerificationIssue(
                    kind="missing-page",
                    source=source,
                    target=first.url,
                    message=f"Rendered page not found at {first.path}; run 'postkit build'.",
                )
            )
        elif first.path.read_bytes() != first.html.encode("utf-8"):
            issues.append(
                VerificationIssue(
                    kind="stale-output",
                    source=source,
                    target=first.url,
                    message="Rendered page on disk differs from a fresh rendering of its source.",
                )
            )
    return VerificationReport(scanned_files=len(posts), issues=issues)


def _outline_issues(html_file: Path, html: str) -> Iterator[VerificationIssue]:
    outline = check_rendered_outline(html)
    if not outline.title:
        yield VerificationIssue(
            kind="missing-title",
            source=html_file,
            target="<title>",
            message="Page has no <title> or the title is empty.",
        )
    for skip in outline.skips:
        yield VerificationIssue(
            kind="heading-skip",
            source=html_file,
            target=f"line {skip.line}",
            message=skip.message,
        )


def _parse_srcset(srcset: str) -> Iterator[str]:
    for part in srcset.split(","):
        candidate = part.strip().split(" ", 1)[0]
        if candidate:
            yield candidate


def _is_ignorable(reference: str) -> bool:
    stripped = reference.strip()
    if not stripped:
        return True
    if "{{" in stripped or "{%" in stripped or "}}" in stripped or "%}" in stripped:
        return True

    parsed = urlsplit(stripped)

    if parsed.scheme in {"http", "https", "mailto", "tel", "data", "javascript", "ftp"}:
        return True
    if parsed.netloc and not parsed.scheme:
        return True
    if not parsed.path and (parsed.fragment or parsed.query):
        return True

    return False


def _resolve_reference(
    reference: str, source: Path, output_dir: Path
) -> tuple[Path | None, bool, str | None]:
    parsed = urlsplit(reference)
    path = unquote(parsed.path or "")

    if not path:
        return None, False, None

    if path.startswith("/"):
        candidate = (output_dir / path.lstrip("/")).resolve()
    else:
        candidate = (source.parent / path).resolve()

    try:
        candidate.relative_to(output_dir)
    except ValueError:
        return None, False, "out-of-bounds"

    if candidate.is_dir():
        return candidate, True, None

    if candidate.suffix:
        return candidate, False, None

    return candidate, True, None


def _classify_issue(tag: str) -> str:
    if tag == "a":
        return "missing-page"
    if tag in {"img", "video", "audio", "source", "track"}:
        return "missing-asset"
    return "error"
