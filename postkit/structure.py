"""Structural checks over post bodies: fences, heading levels, and links."""

from __future__ import annotations

from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Iterable, Iterator, List, Protocol, Tuple
from urllib.parse import urlsplit

from markdown_it.token import Token

from .markdown import parse_tokens

EXTERNAL_SCHEMES = {"http", "https", "ftp"}
IGNORED_SCHEMES = {"mailto", "tel", "data", "javascript"}


class _Heading(Protocol):
    level: int
    text: str
    line: int


@dataclass(frozen=True, slots=True)
class FenceSpan:
    """A fenced code block located in source text."""

    marker: str
    length: int
    language: str | None
    start_line: int
    end_line: int | None

    @property
    def closed(self) -> bool:
        return self.end_line is not None


@dataclass(frozen=True, slots=True)
class HeadingSkip:
    """A heading nested more than one level below its predecessor."""

    line: int
    level: int
    previous_level: int
    text: str

    @property
    def message(self) -> str:
        return (
            f"Heading '{self.text}' jumps from h{self.previous_level} to h{self.level}; "
            f"expected h{self.previous_level + 1} or shallower."
        )


@dataclass(frozen=True, slots=True)
class LinkReference:
    """A link or image target found in a post body."""

    kind: str
    target: str
    text: str
    line: int
    scope: str


def scan_fences(text: str, *, line_offset: int = 1) -> list[FenceSpan]:
    """Locate fenced code blocks and report whether each one is closed.

    Fences come from the CommonMark token stream, so blocks nested in lists
    and block quotes are found too. A fence that runs to the end of its
    container without a closing marker is reported as unclosed.
    """
    if not text.strip():
        return []
    spans: list[FenceSpan] = []
    for token in parse_tokens(text):
        if token.type != "fence" or token.map is None:
            continue
        start, end = token.map
        info = token.info.strip()
        # Span is the opener, the content lines, and the closer when present.
        closed = end - start > 1 + _line_count(token.content)
        spans.append(
            FenceSpan(
                marker=token.markup[0],
                length=len(token.markup),
                language=info.split(" ", 1)[0] if info else None,
                start_line=line_offset + start,
                end_line=line_offset + end - 1 if closed else None,
            )
        )
    return spans


def _line_count(content: str) -> int:
    if not content:
        return 0
    return content.count("\n") + (0 if content.endswith("\n") else 1)


def check_heading_hierarchy(headings: Iterable[_Heading], *, base_level: int = 1) -> list[HeadingSkip]:
    """Return every heading that skips a level relative to the one before it."""
    skips: list[HeadingSkip] = []
    previous = base_level
    for heading in headings:
        if heading.level > previous + 1:
            skips.append(
                HeadingSkip(
                    line=heading.line,
                    level=heading.level,
                    previous_level=previous,
                    text=heading.text,
                )
            )
        previous = heading.level
    return skips


def extract_links(text: str, *, line_offset: int = 1) -> list[LinkReference]:
    """Collect link and image targets from Markdown (and inline HTML) in source order."""
    if not text.strip():
        return []
    references: list[LinkReference] = []
    for token in parse_tokens(text):
        line = line_offset + (token.map[0] if token.map else 0)
        if token.type == "inline":
            references.extend(_inline_references(token, line))
        elif token.type == "html_block":
            references.extend(_html_references(token.content, line))
    return references


def classify_target(target: str) -> str:
    """Classify a URL as external, internal, fragment, or ignored."""
    stripped = target.strip()
    if not stripped:
        return "ignored"
    parsed = urlsplit(stripped)
    scheme = parsed.scheme.lower()
    if scheme in IGNORED_SCHEMES:
        return "ignored"
    if scheme in EXTERNAL_SCHEMES or (parsed.netloc and not scheme):
        return "external"
    if scheme:
        return "ignored"
    if not parsed.path:
        return "fragment" if parsed.fragment else "ignored"
    return "internal"


def _inline_references(inline: Token, line: int) -> Iterator[LinkReference]:
    children = inline.children or []
    for position, child in enumerate(children):
        if child.type == "link_open":
            href = str(child.attrGet("href") or "")
            label = _link_label(children, position)
            yield LinkReference("link", href, label, line, classify_target(href))
        elif child.type == "image":
            src = str(child.attrGet("src") or "")
            yield LinkReference("image", src, child.content.strip(), line, classify_target(src))
        elif child.type == "html_inline":
            yield from _html_references(child.content, line)


def _link_label(children: list[Token], start: int) -> str:
    parts: list[str] = []
    for child in children[start + 1 :]:
        if child.type == "link_close":
            break
        parts.append(child.content)
    return "".join(parts).strip()


def _html_references(markup: str, line: int) -> Iterator[LinkReference]:
    collector = _HtmlReferenceCollector()
    collector.feed(markup)
    collector.close()
    for kind, target, text in collector.references:
        yield LinkReference(kind, target, text, line, classify_target(target))


class _HtmlReferenceCollector(HTMLParser):
    """Collect ``a href`` and ``img src`` targets from raw HTML fragments."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.references: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        attr_map = {name: value for name, value in attrs if value is not None}
        if tag == "a" and "href" in attr_map:
            self.references.append(("link", attr_map["href"], ""))
        elif tag == "img" and "src" in attr_map:
            self.references.append(("image", attr_map["src"], attr_map.get("alt", "")))
