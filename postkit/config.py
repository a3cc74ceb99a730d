from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_FILENAME = "postkit.yml"
DEFAULT_PERMALINK = "/:categories/:year/:month/:day/:title/"
PERMALINK_TOKENS = (":categories", ":year", ":month", ":day", ":title", ":slug")


class SiteConfig(BaseModel):
    """Site-wide metadata exposed to layouts and feeds."""

    title: str = Field(default="postkit site")
    description: str = Field(default="")
    author: str | None = Field(default=None, description="Fallback author for the feed.")
    base_url: str | None = Field(
        default=None,
        description="Canonical site URL used for absolute links (e.g., 'https://example.com').",
    )
    language: str = Field(default="en")

    @field_validator("base_url")
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip().rstrip("/")
        return text or None


class FeedConfig(BaseModel):
    """Options controlling feed generation."""

    enabled: bool = Field(
        default=True,
        description="Toggle Atom feed generation.",
    )
    limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Maximum number of entries to include in the feed.",
    )
    filename: str = Field(default="atom.xml")


class LintConfig(BaseModel):
    """Switches for optional lint rules."""

    require_code_language: bool = Field(
        default=True,
        description="Warn when a fenced code block has no language tag.",
    )
    require_alt_text: bool = Field(
        default=True,
        description="Warn when an image has no alt text.",
    )
    require_utc_offset: bool = Field(
        default=True,
        description="Warn when a front-matter date carries no UTC offset.",
    )
    base_heading_level: int = Field(
        default=1,
        ge=1,
        le=6,
        description="Heading level occupied by the page title; body headings nest below it.",
    )


class Config(BaseModel):
    project_name: str = Field(default="postkit project")
    content_dir: Path = Field(default=Path("_posts"))
    static_dir: Path = Field(default=Path("assets"))
    output_dir: Path = Field(default=Path("_site"))
    layouts_dir: Path = Field(default=Path("_layouts"))
    cache_dir: Path = Field(default=Path(".cache"))
    permalink: str = Field(default=DEFAULT_PERMALINK)
    default_layout: str = Field(default="post")
    site: SiteConfig = Field(default_factory=SiteConfig)
    feeds: FeedConfig = Field(default_factory=FeedConfig)
    lint: LintConfig = Field(default_factory=LintConfig)

    @field_validator(
        "content_dir",
        "static_dir",
        "output_dir",
        "layouts_dir",
        "cache_dir",
        mode="before",
    )
    def _ensure_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("permalink")
    def _normalize_permalink(cls, value: str) -> str:
        text = value.strip()
        if not text:
            return DEFAULT_PERMALINK
        if not text.startswith("/"):
            text = f"/{text}"
        return text

    @property
    def static_url_prefix(self) -> str:
        return f"/{self.static_dir.name}/"


def load_config(path: str | Path) -> Config:
    """Load configuration and resolve relative paths based on the config location.

    The ``path`` argument may point to a file (e.g., ``/blog/postkit.yml``) or a
    directory containing that file. All relative paths inside the configuration
    are interpreted relative to the directory holding the config file.
    """
    candidate = Path(path)
    data: dict[str, Any] = {}
    base_dir: Path
    if candidate.is_dir():
        # A project directory without a config file falls back to defaults.
        config_file = candidate / CONFIG_FILENAME
        if config_file.exists():
            data = _read_yaml(config_file)
        base_dir = candidate.resolve()
    else:
        if not candidate.exists():
            raise FileNotFoundError(candidate)
        data = _read_yaml(candidate)
        base_dir = candidate.parent.resolve()

    cfg = Config(**data)

    def _abs(value: Path) -> Path:
        return value if value.is_absolute() else (base_dir / value).resolve()

    cfg.content_dir = _abs(cfg.content_dir)
    cfg.static_dir = _abs(cfg.static_dir)
    cfg.output_dir = _abs(cfg.output_dir)
    cfg.layouts_dir = _abs(cfg.layouts_dir)
    cfg.cache_dir = _abs(cfg.cache_dir)
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Configuration {path} must define a mapping at the top level.")
    return data
