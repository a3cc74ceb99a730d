"""Layout loading and rendering utilities for postkit."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateNotFound,
    UndefinedError,
    select_autoescape,
)

logger = logging.getLogger(__name__)

LAYOUT_SUFFIX = ".html"
BUILTIN_LAYOUT_PACKAGE = "default_layouts"


class LayoutError(RuntimeError):
    """Raised when a layout cannot be found or rendered."""


class LayoutLoader:
    """Resolve layout names to Jinja templates.

    Layouts in ``layouts_dir`` shadow the built-in ``default``, ``post`` and
    ``index`` layouts shipped with the package.
    """

    def __init__(self, layouts_dir: Path | None = None) -> None:
        self._layouts_dir = layouts_dir
        loaders: list[Any] = []
        if layouts_dir is not None:
            if layouts_dir.is_dir():
                loaders.append(FileSystemLoader(str(layouts_dir)))
            else:
                logger.warning("Layouts directory %s not found; using built-in layouts.", layouts_dir)
        loaders.append(PackageLoader("postkit", BUILTIN_LAYOUT_PACKAGE))
        self._environment = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @property
    def environment(self) -> Environment:
        return self._environment

    def available(self) -> set[str]:
        """Return the names of every layout that can be rendered."""
        names: set[str] = set()
        for template_name in self._environment.list_templates(extensions=[LAYOUT_SUFFIX.lstrip(".")]):
            if "/" in template_name:
                continue
            names.add(template_name[: -len(LAYOUT_SUFFIX)])
        return names

    def has_layout(self, name: str) -> bool:
        return name in self.available()

    def render(self, name: str, context: dict[str, Any]) -> str:
        try:
            template = self._environment.get_template(f"{name}{LAYOUT_SUFFIX}")
        except TemplateNotFound as exc:
            raise LayoutError(f"Layout '{name}' does not exist.") from exc
        try:
            return template.render(**context)
        except UndefinedError as exc:
            raise LayoutError(f"Layout '{name}' references an undefined value: {exc.message}") from exc
