from __future__ import annotations

import json
import re
import shutil
from pathlib import Path

import pytest
from typer.testing import CliRunner

from postkit.cli import app

FIXTURE_PROJECT = Path(__file__).parent / "fixtures" / "blog"
POST_PAGE = Path("_site/r/2015/11/03/deep-learning-with-mxnetr/index.html")


@pytest.fixture()
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "blog"
    shutil.copytree(FIXTURE_PROJECT, root)
    monkeypatch.chdir(root)
    return root


def test_build_writes_pages_feed_assets_and_report(project: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 0, result.output
    assert "initializing cache" in result.output
    assert re.search(r"rendered\s+2\s+page\(s\)", result.output)
    assert POST_PAGE.exists()
    assert Path("_site/index.html").exists()
    assert Path("_site/atom.xml").exists()
    assert Path("_site/assets/img/mxnet-logo.png").exists()
    assert Path(".cache/build-state.json").exists()

    report = json.loads(Path("_site/report.json").read_text(encoding="utf-8"))
    assert report["project"] == "MXNet Blog"
    assert report["documents"] == {"total": 1, "published": 1, "unpublished": 0}
    assert report["blocks"]["code_blocks"] == 4
    assert report["pages_written"] == 2

    again = runner.invoke(app, ["build"])
    assert again.exit_code == 0, again.output
    assert "no input changes detected" in again.output


def test_build_detects_changes_and_prunes_unpublished_pages(project: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(app, ["build"]).exit_code == 0

    post = project / "_posts" / "2015-11-03-deep-learning-with-mxnetr.md"
    post.write_text(
        post.read_text(encoding="utf-8").replace("comments: true\n", "comments: true\npublished: false\n"),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["build"])

    assert result.exit_code == 0, result.output
    assert re.search(r"changes\s+detected\s+in\s+content_dir", result.output)
    assert re.search(r"removed\s+1\s+stale\s+page\(s\)", result.output)
    assert re.search(r"skipped\s+\(published:\s+false\)", result.output)
    assert not POST_PAGE.exists()
    assert not Path("_site/atom.xml").exists()


def test_build_force_clears_output(project: Path) -> None:
    stray = Path("_site/leftover.html")
    stray.parent.mkdir()
    stray.write_text("old", encoding="utf-8")

    result = CliRunner().invoke(app, ["build", "--force"])

    assert result.exit_code == 0, result.output
    assert "Force rebuild" in result.output
    assert not stray.exists()
    assert POST_PAGE.exists()


def test_build_fails_on_invalid_front_matter(project: Path) -> None:
    (project / "_posts" / "2016-01-01-bad.md").write_text("---\ntitle: Bad\n---\nBody\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["build"])

    assert result.exit_code == 1
    assert "Validation failed" in result.output


def test_verify_passes_after_build_and_detects_stale_output(project: Path) -> None:
    runner = CliRunner()
    missing = runner.invoke(app, ["verify"])
    assert missing.exit_code == 1
    assert "Site output not found" in missing.output

    assert runner.invoke(app, ["build"]).exit_code == 0

    result = runner.invoke(app, ["verify", "--report", "verify.txt"])
    assert result.exit_code == 0, result.output
    assert "Verification complete" in result.output
    assert "Reproducible" in result.output
    report_text = Path("verify.txt").read_text(encoding="utf-8")
    assert report_text.startswith("postkit site verification report")
    assert "Posts re-rendered: 1" in report_text

    POST_PAGE.write_text(POST_PAGE.read_text(encoding="utf-8").replace("Nov 3, 2015", "Nov 4, 2015"), encoding="utf-8")

    stale = runner.invoke(app, ["verify"])
    assert stale.exit_code == 1
    assert "stale-output" in stale.output

    relaxed = runner.invoke(app, ["verify", "--no-reproducible"])
    assert relaxed.exit_code == 0, relaxed.output


def test_verify_flags_broken_links_in_output(project: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(app, ["build"]).exit_code == 0
    shutil.rmtree("_site/assets")

    result = runner.invoke(app, ["verify", "--no-reproducible"])

    assert result.exit_code == 1
    assert "missing-asset" in result.output


def test_outline_prints_sections_in_order(project: Path) -> None:
    result = CliRunner().invoke(app, ["outline", "_posts/2015-11-03-deep-learning-with-mxnetr.md"])

    assert result.exit_code == 0, result.output
    output = result.output
    assert output.index("Deep Learning with MXNetR") < output.index("Train your first neural network")
    assert output.index("Train your first neural network") < output.index("Handwritten Digits")
    assert output.index("Handwritten Digits") < output.index("Classify Real-World Images")
    assert output.count("code (r)") == 4


def test_outline_fails_on_skipped_heading(project: Path) -> None:
    path = project / "_posts" / "2016-01-01-skip.md"
    path.write_text("---\ntitle: Skip\n---\n## Two\n\n#### Four\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["outline", str(path)])

    assert result.exit_code == 1
    assert "heading-skip" in result.output


def test_clean_removes_output_and_cache(project: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(app, ["build"]).exit_code == 0

    result = runner.invoke(app, ["clean", "--cache"])

    assert result.exit_code == 0, result.output
    assert "removed 2 directories" in result.output
    assert not Path("_site").exists()
    assert not Path(".cache").exists()


def test_preview_requires_built_site(project: Path) -> None:
    result = CliRunner().invoke(app, ["preview"])

    assert result.exit_code == 1
    assert "Site output not found" in result.output


def test_build_fails_when_two_posts_share_a_url(project: Path) -> None:
    (project / "_posts" / "2016-01-01-clash.md").write_text(
        "---\n"
        "layout: post\n"
        "title: Clash\n"
        "date: 2016-01-01 10:00:00 +0000\n"
        "author: A\n"
        "categories: misc\n"
        "permalink: /r/2015/11/03/deep-learning-with-mxnetr/\n"
        "---\n"
        "Body\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(app, ["build"])

    assert result.exit_code == 1
    assert "Render failed" in result.output
    assert re.search(r"already\s+produced\s+by", result.output)
