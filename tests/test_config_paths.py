from __future__ import annotations

from pathlib import Path

import pytest

from postkit.config import DEFAULT_PERMALINK, load_config


def _write_project_config(root: Path) -> Path:
    config_text = (
        "project_name: External Project\n"
        "content_dir: posts\n"
        "static_dir: static\n"
        "output_dir: public\n"
        "layouts_dir: layouts\n"
        "cache_dir: .cache\n"
        "permalink: blog/:year/:title\n"
        "site:\n"
        "  title: External\n"
        "  base_url: https://example.com/\n"
        "feeds:\n"
        "  limit: 5\n"
        "lint:\n"
        "  require_alt_text: false\n"
    )
    cfg_path = root / "postkit.yml"
    cfg_path.write_text(config_text, encoding="utf-8")
    return cfg_path


def test_load_config_resolves_paths_relative_to_config_directory(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    _write_project_config(project)

    # Pass a directory path; the loader finds postkit.yml inside it.
    cfg = load_config(project)

    assert cfg.content_dir == (project / "posts").resolve()
    assert cfg.static_dir == (project / "static").resolve()
    assert cfg.output_dir == (project / "public").resolve()
    assert cfg.layouts_dir == (project / "layouts").resolve()
    assert cfg.cache_dir == (project / ".cache").resolve()

    assert cfg.permalink == "/blog/:year/:title"
    assert cfg.site.base_url == "https://example.com"
    assert cfg.feeds.limit == 5
    assert cfg.lint.require_alt_text is False
    assert cfg.static_url_prefix == "/static/"


def test_load_config_accepts_config_file_path(tmp_path: Path) -> None:
    project = tmp_path / "siteproj"
    project.mkdir()
    config_file = _write_project_config(project)

    cfg = load_config(config_file)
    assert cfg.output_dir == (project / "public").resolve()


def test_load_config_uses_defaults_when_directory_has_no_config(tmp_path: Path) -> None:
    project = tmp_path / "emptyproj"
    project.mkdir()

    cfg = load_config(project)

    assert cfg.content_dir == (project / "_posts").resolve()
    assert cfg.static_dir == (project / "assets").resolve()
    assert cfg.output_dir == (project / "_site").resolve()
    assert cfg.layouts_dir == (project / "_layouts").resolve()
    assert cfg.permalink == DEFAULT_PERMALINK
    assert cfg.default_layout == "post"
    assert cfg.feeds.filename == "atom.xml"


def test_load_config_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yml")


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    config_file = tmp_path / "postkit.yml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_config(config_file)


def test_load_config_rejects_invalid_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "postkit.yml"
    config_file.write_text("site: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(config_file)
