"""Utilities for preparing the deployable site bundle."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config

logger = logging.getLogger(__name__)


@dataclass
class StagingResult:
    """Summary of static files copied into the output directory."""

    staged_paths: list[Path] = field(default_factory=list)
    removed_paths: list[Path] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.staged_paths)


def reset_directory(path: Path) -> None:
    """Remove a directory and recreate it empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def stage_static_files(config: Config, *, previous_paths: set[Path] | None = None) -> StagingResult:
    """Copy ``static_dir`` into ``output_dir/<static_dir name>``.

    Files staged by an earlier build whose source has since disappeared are
    removed from the bundle.
    """
    result = StagingResult()
    source_root = config.static_dir
    target_root = config.output_dir / source_root.name
    config.output_dir.mkdir(parents=True, exist_ok=True)

    current: set[Path] = set()
    if source_root.is_dir():
        for source in sorted(p for p in source_root.rglob("*") if p.is_file()):
            destination = target_root / source.relative_to(source_root)
            destination.parent.mkdir(parents=True, exist_ok=True)
            if not _same_file(source, destination):
                shutil.copy2(source, destination)
            result.staged_paths.append(destination)
            current.add(destination)
    else:
        logger.debug("Static directory %s not found; nothing to stage.", source_root)

    if previous_paths:
        for orphan in sorted(previous_paths - current, key=lambda p: len(p.parts), reverse=True):
            if orphan.exists():
                _delete_path(orphan)
                result.removed_paths.append(orphan)

    return result


def _same_file(source: Path, destination: Path) -> bool:
    if not destination.exists():
        return False
    source_stat = source.stat()
    destination_stat = destination.stat()
    return (
        source_stat.st_size == destination_stat.st_size
        and int(source_stat.st_mtime) == int(destination_stat.st_mtime)
    )


def _delete_path(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)
