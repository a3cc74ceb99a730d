"""Build reporting helpers for postkit."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from .content import CodeBlock, HeadingBlock, ImageBlock, ParagraphBlock, PostDocument

REPORT_FILENAME = "report.json"


class DocumentStats(BaseModel):
    total: int
    published: int
    unpublished: int


class BlockStats(BaseModel):
    headings: int = 0
    paragraphs: int = 0
    code_blocks: int = 0
    images: int = 0
    other: int = 0
    languages: dict[str, int] = Field(default_factory=dict)


class BuildReport(BaseModel):
    project: str
    generated_at: datetime
    duration_seconds: float
    documents: DocumentStats
    blocks: BlockStats
    pages_written: int
    pages_pruned: int = 0
    feed_path: str | None = None
    warnings: list[str] = Field(default_factory=list)


def build_document_stats(documents: Iterable[PostDocument]) -> DocumentStats:
    total = published = 0
    for document in documents:
        total += 1
        if document.published:
            published += 1
    return DocumentStats(total=total, published=published, unpublished=total - published)


def build_block_stats(documents: Iterable[PostDocument]) -> BlockStats:
    stats = BlockStats()
    languages: dict[str, int] = {}
    for document in documents:
        for block in document.blocks:
            if isinstance(block, HeadingBlock):
                stats.headings += 1
            elif isinstance(block, ParagraphBlock):
                stats.paragraphs += 1
            elif isinstance(block, CodeBlock):
                stats.code_blocks += 1
                key = block.language or "plain"
                languages[key] = languages.get(key, 0) + 1
            elif isinstance(block, ImageBlock):
                stats.images += 1
            else:
                stats.other += 1
    stats.languages = dict(sorted(languages.items()))
    return stats


def assemble_report(
    *,
    project: str,
    duration_seconds: float,
    documents: DocumentStats,
    blocks: BlockStats,
    pages_written: int,
    pages_pruned: int = 0,
    feed_path: Path | None = None,
    warnings: Iterable[str] = (),
) -> BuildReport:
    return BuildReport(
        project=project,
        generated_at=datetime.now(timezone.utc),
        duration_seconds=duration_seconds,
        documents=documents,
        blocks=blocks,
        pages_written=pages_written,
        pages_pruned=pages_pruned,
        feed_path=feed_path.as_posix() if feed_path else None,
        warnings=list(warnings),
    )


def write_report(report: BuildReport, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / REPORT_FILENAME
    with target.open("w", encoding="utf-8") as handle:
        json.dump(report.model_dump(mode="json"), handle, ensure_ascii=False, indent=2)
    return target
