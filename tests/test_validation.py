from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from postkit.config import Config, load_config
from postkit.content import load_post, parse_post
from postkit.validation import (
    DocumentValidationError,
    IssueSeverity,
    lint_document,
    lint_workspace,
    validate_document,
)

FIXTURE_PROJECT = Path(__file__).parent / "fixtures" / "blog"

COMPLETE_FRONT_MATTER = (
    "---\n"
    "layout: post\n"
    "title: Sample\n"
    "date: 2015-11-03 00:00:00 -0800\n"
    "author: Tester\n"
    "categories: R\n"
    "---\n"
)


def _project(tmp_path: Path) -> Config:
    root = tmp_path / "blog"
    shutil.copytree(FIXTURE_PROJECT, root)
    return load_config(root)


def _write_post(config: Config, name: str, text: str) -> Path:
    path = config.content_dir / name
    path.write_text(text, encoding="utf-8")
    return path


def _messages(issues, severity: IssueSeverity) -> list[str]:
    return [issue.message for issue in issues if issue.severity is severity]


def test_fixture_workspace_lints_clean(tmp_path: Path) -> None:
    config = _project(tmp_path)

    report = lint_workspace(config)

    assert report.document_count == 1
    assert report.issues == []
    assert [link.target for link in report.external_links] == [
        "https://github.com/dmlc/mxnet/tree/master/R-package"
    ]


def test_validate_document_reports_first_missing_field(tmp_path: Path) -> None:
    document = parse_post("---\ntitle: Only a title\n---\nBody\n", tmp_path / "2015-11-03-t.md")

    with pytest.raises(DocumentValidationError) as excinfo:
        validate_document(document)

    assert "is a required property" in str(excinfo.value)
    assert excinfo.value.path is not None
    assert excinfo.value.path.startswith("front_matter.")


def test_lint_document_reports_schema_errors_with_pointers(tmp_path: Path) -> None:
    config = _project(tmp_path)
    path = _write_post(config, "2015-11-04-partial.md", "---\ntitle: Partial\ncomments: 1\n---\nBody\n")

    issues = lint_document(load_post(path), config)

    pointers = {issue.pointer for issue in issues if issue.severity is IssueSeverity.ERROR}
    assert {
        "front_matter.layout",
        "front_matter.author",
        "front_matter.categories",
        "front_matter.comments",
    } <= pointers


def test_lint_document_flags_unknown_layout(tmp_path: Path) -> None:
    config = _project(tmp_path)
    text = COMPLETE_FRONT_MATTER.replace("layout: post", "layout: wide") + "Body\n"
    path = _write_post(config, "2015-11-04-wide.md", text)

    issues = lint_document(load_post(path), config, layouts={"default", "post", "index"})

    errors = _messages(issues, IssueSeverity.ERROR)
    assert errors == ["Layout 'wide' does not exist (available: default, index, post)."]


def test_lint_document_warns_on_missing_utc_offset(tmp_path: Path) -> None:
    config = _project(tmp_path)
    text = COMPLETE_FRONT_MATTER.replace(" -0800", "") + "Body\n"
    path = _write_post(config, "2015-11-04-naive.md", text)

    issues = lint_document(load_post(path), config)

    warnings = _messages(issues, IssueSeverity.WARNING)
    assert len(warnings) == 1
    assert "has no UTC offset" in warnings[0]
    assert _messages(issues, IssueSeverity.ERROR) == []


def test_lint_document_reports_fence_and_heading_problems(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = (
        "## Section\n"
        "\n"
        "#### Too deep\n"
        "\n"
        "```\n"
        "no language\n"
        "```\n"
        "\n"
        "```r\n"
        "never closed\n"
    )
    path = _write_post(config, "2015-11-04-structure.md", COMPLETE_FRONT_MATTER + body)

    issues = lint_document(load_post(path), config)

    errors = [(issue.pointer, issue.message) for issue in issues if issue.severity is IssueSeverity.ERROR]
    assert ("body:L10", "Heading 'Too deep' jumps from h2 to h4; expected h3 or shallower.") in errors
    assert ("body:L16", "Fenced code block opened with '```' is never closed.") in errors
    warnings = [(issue.pointer, issue.message) for issue in issues if issue.severity is IssueSeverity.WARNING]
    assert warnings == [("body:L12", "Fenced code block has no language tag.")]


def test_lint_document_checks_links_and_images(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = (
        "## Results\n"
        "\n"
        "![](/assets/img/mxnet-logo.png)\n"
        "\n"
        "See [missing](/assets/img/missing.png), [results](#results), [nothing](#nothing),\n"
        "[relative](../assets/img/mxnet-logo.png) and [offsite](https://example.org/).\n"
    )
    path = _write_post(config, "2015-11-04-links.md", COMPLETE_FRONT_MATTER + body)

    issues = lint_document(load_post(path), config)

    assert _messages(issues, IssueSeverity.ERROR) == ["Missing target for link '/assets/img/missing.png'."]
    assert _messages(issues, IssueSeverity.WARNING) == [
        "Image '/assets/img/mxnet-logo.png' is missing alt text.",
        "Fragment '#nothing' does not match any heading anchor.",
    ]


def test_lint_document_resolves_links_to_other_posts(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = "Read [the MXNetR intro](/r/2015/11/03/deep-learning-with-mxnetr/) first.\n"
    path = _write_post(config, "2015-11-04-follow-up.md", COMPLETE_FRONT_MATTER + body)
    known_urls = {"/r/2015/11/03/deep-learning-with-mxnetr/"}

    assert lint_document(load_post(path), config, known_urls=known_urls) == []
    missing = lint_document(load_post(path), config, known_urls=set())
    assert [issue.severity for issue in missing] == [IssueSeverity.ERROR]


def test_lint_workspace_reports_unpublished_and_broken_posts(tmp_path: Path) -> None:
    config = _project(tmp_path)
    _write_post(
        config,
        "2015-11-05-draft.md",
        COMPLETE_FRONT_MATTER.replace("---\n", "---\npublished: false\n", 1) + "Draft\n",
    )
    _write_post(config, "2015-11-06-broken.md", "---\ntitle: [unclosed\n---\n")

    report = lint_workspace(config)

    assert report.document_count == 2
    assert report.error_count == 1
    assert report.warning_count == 1
    broken = [issue for issue in report.issues if issue.severity is IssueSeverity.ERROR][0]
    assert broken.slug == "2015-11-06-broken"
    assert "Malformed YAML" in broken.message


def test_lint_workspace_flags_duplicate_urls(tmp_path: Path) -> None:
    config = _project(tmp_path)
    text = COMPLETE_FRONT_MATTER.replace(
        "categories: R\n", "categories: R\npermalink: /r/2015/11/03/deep-learning-with-mxnetr/\n"
    )
    _write_post(config, "2015-11-07-clash.md", text + "Body\n")

    report = lint_workspace(config)

    duplicates = [issue for issue in report.issues if "already produced by" in issue.message]
    assert len(duplicates) == 1
    assert duplicates[0].pointer == "front_matter.permalink"


def test_lint_workspace_rejects_links_to_unpublished_posts(tmp_path: Path) -> None:
    config = _project(tmp_path)
    _write_post(
        config,
        "2015-11-05-draft.md",
        COMPLETE_FRONT_MATTER.replace("---\n", "---\npublished: false\n", 1) + "Draft\n",
    )
    _write_post(
        config,
        "2015-11-06-live.md",
        COMPLETE_FRONT_MATTER + "Read [the draft](/r/2015/11/03/draft/).\n",
    )

    report = lint_workspace(config)

    errors = [(issue.slug, issue.message) for issue in report.issues if issue.severity is IssueSeverity.ERROR]
    assert errors == [("live", "Missing target for link '/r/2015/11/03/draft/'.")]


def test_lint_document_accepts_fences_in_list_items(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = "- ```r\n  x <- 1\n  ```\n"
    path = _write_post(config, "2015-11-04-list.md", COMPLETE_FRONT_MATTER + body)

    assert lint_document(load_post(path), config) == []


def test_lint_document_checks_fences_in_block_quotes(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = "> ```\n> untagged\n> ```\n\n> ```r\n> never closed\n"
    path = _write_post(config, "2015-11-04-quoted.md", COMPLETE_FRONT_MATTER + body)

    issues = lint_document(load_post(path), config)

    assert _messages(issues, IssueSeverity.ERROR) == ["Fenced code block opened with '```' is never closed."]
    assert _messages(issues, IssueSeverity.WARNING) == ["Fenced code block has no language tag."]


def test_lint_document_matches_fragments_to_nested_headings(tmp_path: Path) -> None:
    config = _project(tmp_path)
    body = "## Notes\n\n> ### Quoted detail\n\nSee [the detail](#quoted-detail).\n"
    path = _write_post(config, "2015-11-04-nested.md", COMPLETE_FRONT_MATTER + body)

    assert lint_document(load_post(path), config) == []


def test_lint_document_rejects_permalinks_leaving_the_site(tmp_path: Path) -> None:
    config = _project(tmp_path)
    text = COMPLETE_FRONT_MATTER.replace("categories: R\n", "categories: R\npermalink: /../../escaped/\n")
    path = _write_post(config, "2015-11-04-escape.md", text + "Body\n")

    issues = lint_document(load_post(path), config)

    assert [(issue.pointer, issue.severity) for issue in issues] == [
        ("front_matter.permalink", IssueSeverity.ERROR)
    ]
