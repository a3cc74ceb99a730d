"""Shared Markdown rendering and block extraction helpers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import cast

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.anchors import anchors_plugin
from mdit_py_plugins.deflist import deflist_plugin
from mdit_py_plugins.footnote import footnote_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

from .content.models import (
    CodeBlock,
    ContentBlock,
    HeadingBlock,
    ImageBlock,
    OtherBlock,
    ParagraphBlock,
)

ANCHOR_STRIP_PATTERN = re.compile(r"[^\w\- ]")

_CONTAINER_KINDS = {
    "bullet_list_open": "list",
    "ordered_list_open": "list",
    "dl_open": "list",
    "blockquote_open": "quote",
    "table_open": "table",
    "hr": "rule",
    "html_block": "html",
}


def heading_anchor(text: str) -> str:
    """Slug used for heading ``id`` attributes."""
    cleaned = ANCHOR_STRIP_PATTERN.sub("", text.strip().lower())
    return re.sub(r"\s+", "-", cleaned).strip("-") or "section"


@lru_cache(maxsize=1)
def _renderer() -> MarkdownIt:
    """Configure and cache a CommonMark-compliant renderer."""
    md = MarkdownIt("commonmark", {"html": True})
    md.enable("table").enable("strikethrough")
    md.use(anchors_plugin, min_level=1, max_level=6, slug_func=heading_anchor)
    md.use(deflist_plugin)
    md.use(footnote_plugin)
    md.use(tasklists_plugin, label=True)
    return md


def render_markdown(text: str) -> str:
    """Render Markdown to HTML using the shared renderer."""
    if not text.strip():
        return ""
    return cast(str, _renderer().render(text))


def parse_tokens(text: str) -> list[Token]:
    """Parse Markdown into the shared renderer's block token stream."""
    return _renderer().parse(text)


def parse_blocks(text: str, *, line_offset: int = 1) -> list[ContentBlock]:
    """Split a Markdown body into ordered top-level content blocks.

    ``line_offset`` is the source line holding the first body line so block
    positions point into the original file.
    """
    if not text.strip():
        return []
    tokens = parse_tokens(text)
    blocks: list[ContentBlock] = []

    for index, token in enumerate(tokens):
        if token.level != 0 or token.nesting == -1:
            continue
        line = line_offset + (token.map[0] if token.map else 0)

        if token.type == "heading_open":
            inline = tokens[index + 1]
            blocks.append(
                HeadingBlock(
                    line=line,
                    level=int(token.tag[1]),
                    text=inline.content.strip(),
                    anchor=str(token.attrGet("id") or heading_anchor(inline.content)),
                )
            )
        elif token.type == "paragraph_open":
            inline = tokens[index + 1]
            image = _lone_image(inline)
            if image is not None:
                blocks.append(
                    ImageBlock(
                        line=line,
                        src=str(image.attrGet("src") or ""),
                        alt=image.content.strip(),
                        title=_optional_attr(image, "title"),
                    )
                )
            else:
                blocks.append(ParagraphBlock(line=line, text=inline.content.strip()))
        elif token.type in {"fence", "code_block"}:
            language = token.info.strip().split(" ", 1)[0] if token.info.strip() else None
            blocks.append(
                CodeBlock(
                    line=line,
                    language=language or None,
                    code=token.content,
                    fenced=token.type == "fence",
                )
            )
        elif token.type in _CONTAINER_KINDS:
            blocks.append(OtherBlock(kind=_CONTAINER_KINDS[token.type], line=line))  # type: ignore[arg-type]

    return blocks


def _lone_image(inline: Token) -> Token | None:
    children = [
        child
        for child in inline.children or []
        if not (child.type in {"text", "softbreak"} and not child.content.strip())
    ]
    if len(children) == 1 and children[0].type == "image":
        return children[0]
    return None


def _optional_attr(token: Token, name: str) -> str | None:
    value = token.attrGet(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def heading_anchors(text: str) -> set[str]:
    """Return the ``id`` of every heading, including those nested in lists and quotes."""
    if not text.strip():
        return set()
    return {
        str(token.attrGet("id"))
        for token in parse_tokens(text)
        if token.type == "heading_open" and token.attrGet("id")
    }
