"""Helpers for tracking build inputs between runs."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

from .config import Config

logger = logging.getLogger(__name__)

STATE_FILENAME = "build-state.json"
STATE_VERSION = 1


@dataclass
class BuildState:
    """Snapshot of the previous build inputs and the files it wrote."""

    version: int
    fingerprints: Dict[str, str]
    page_paths: list[str] = field(default_factory=list)
    static_paths: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "fingerprints": self.fingerprints,
            "page_paths": self.page_paths,
            "static_paths": self.static_paths,
        }

    @classmethod
    def empty(cls) -> "BuildState":
        return cls(version=STATE_VERSION, fingerprints={})

    @classmethod
    def load(cls, path: Path) -> "BuildState":
        if not path.exists():
            return cls.empty()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable build state at %s.", path)
            return cls.empty()
        if not isinstance(payload, dict):
            return cls.empty()

        version = int(payload.get("version") or STATE_VERSION)
        if version != STATE_VERSION:
            return cls.empty()
        return cls(
            version=version,
            fingerprints=dict(payload.get("fingerprints") or {}),
            page_paths=list(payload.get("page_paths") or []),
            static_paths=list(payload.get("static_paths") or []),
        )

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )


@dataclass
class ChangeSummary:
    """Which input groups changed since the last build."""

    changed_keys: set[str]
    first_run: bool

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_keys) or self.first_run


class BuildTracker:
    """Compute and persist build fingerprints between runs."""

    def __init__(self, config: Config, config_path: Path):
        self._config = config
        self._config_path = Path(config_path)
        self._state_path = config.cache_dir / STATE_FILENAME
        self._previous_state = BuildState.load(self._state_path)

    @property
    def state_path(self) -> Path:
        return self._state_path

    @property
    def previous_state(self) -> BuildState:
        return self._previous_state

    @property
    def previous_page_paths(self) -> set[Path]:
        return self._under_output(self._previous_state.page_paths)

    @property
    def previous_static_paths(self) -> set[Path]:
        return self._under_output(self._previous_state.static_paths)

    def compute_fingerprints(self) -> Dict[str, str]:
        config = self._config
        return {
            "config_file": _hash_file(self._config_path),
            "config_values": _hash_text(config.model_dump_json()),
            "content_dir": _hash_tree(config.content_dir),
            "static_dir": _hash_tree(config.static_dir),
            "layouts_dir": _hash_tree(config.layouts_dir),
        }

    def summarize_changes(self, current: Mapping[str, str]) -> ChangeSummary:
        previous = self._previous_state.fingerprints
        changed = {key for key, value in current.items() if previous.get(key) != value}
        return ChangeSummary(changed_keys=changed, first_run=not previous)

    def persist(
        self,
        fingerprints: Mapping[str, str],
        page_paths: Sequence[Path],
        static_paths: Sequence[Path] = (),
    ) -> None:
        state = BuildState(
            version=STATE_VERSION,
            fingerprints=dict(fingerprints),
            page_paths=self._relative(page_paths),
            static_paths=self._relative(static_paths),
        )
        state.save(self._state_path)

    def _relative(self, paths: Iterable[Path]) -> list[str]:
        relative_paths = []
        for path in paths:
            try:
                relative = path.relative_to(self._config.output_dir)
            except ValueError:
                # Only paths under the output directory are tracked.
                continue
            relative_paths.append(relative.as_posix())
        return sorted(relative_paths)

    def _under_output(self, entries: Iterable[str]) -> set[Path]:
        return {self._config.output_dir / Path(entry) for entry in entries}


def _hash_tree(root: Path) -> str:
    hasher = hashlib.sha256()
    if not root.exists():
        return hasher.hexdigest()

    for path in sorted(_iter_files(root)):
        hasher.update(path.relative_to(root).as_posix().encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(hashlib.sha256(path.read_bytes()).digest())
    return hasher.hexdigest()


def _iter_files(root: Path) -> Iterable[Path]:
    for entry in root.rglob("*"):
        if entry.is_file():
            yield entry


def _hash_file(path: Path) -> str:
    hasher = hashlib.sha256()
    if not path.is_file():
        return hasher.hexdigest()
    hasher.update(path.read_bytes())
    return hasher.hexdigest()


def _hash_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
