from __future__ import annotations

from dataclasses import dataclass

from postkit.structure import check_heading_hierarchy, classify_target, extract_links, scan_fences


@dataclass
class _Heading:
    level: int
    text: str
    line: int


def test_scan_fences_reports_balanced_blocks() -> None:
    text = "Intro\n\n```r\nx <- 1\n```\n\n~~~~\nplain\n~~~~\n"

    spans = scan_fences(text, line_offset=10)

    assert [(span.marker, span.language, span.start_line, span.end_line) for span in spans] == [
        ("`", "r", 12, 14),
        ("~", None, 16, 18),
    ]
    assert all(span.closed for span in spans)


def test_scan_fences_detects_unclosed_block() -> None:
    text = "```python\nprint('hi')\n\n## Not a heading\n"

    spans = scan_fences(text)

    assert len(spans) == 1
    assert spans[0].closed is False
    assert spans[0].start_line == 1
    assert spans[0].language == "python"


def test_scan_fences_requires_matching_marker_and_length() -> None:
    text = "````md\n```\nnested\n```\n````\n"

    spans = scan_fences(text)

    assert len(spans) == 1
    assert spans[0].length == 4
    assert spans[0].end_line == 5


def test_scan_fences_ignores_closing_fence_with_info() -> None:
    spans = scan_fences("```r\ncode\n```r\n")

    assert len(spans) == 1
    assert spans[0].closed is False


def test_heading_hierarchy_flags_skipped_levels() -> None:
    headings = [
        _Heading(2, "Intro", 3),
        _Heading(4, "Deep", 7),
        _Heading(2, "Back", 9),
        _Heading(3, "Fine", 11),
    ]

    skips = check_heading_hierarchy(headings, base_level=1)

    assert [(skip.line, skip.previous_level, skip.level) for skip in skips] == [(7, 2, 4)]
    assert "h2 to h4" in skips[0].message


def test_heading_hierarchy_checks_first_heading_against_base() -> None:
    skips = check_heading_hierarchy([_Heading(3, "Too deep", 1)], base_level=1)

    assert len(skips) == 1
    assert skips[0].previous_level == 1


def test_extract_links_classifies_targets() -> None:
    text = (
        "See [docs](https://mxnet.io) and [intro](#intro).\n"
        "\n"
        "![](/assets/plot.png)\n"
        "\n"
        "Mail [us](mailto:team@example.org) or read [older post](/r/2015/10/01/old/).\n"
        "\n"
        '<a href="../assets/data.csv">raw</a>\n'
    )

    references = extract_links(text, line_offset=5)

    summary = [(ref.kind, ref.target, ref.scope, ref.line) for ref in references]
    assert summary == [
        ("link", "https://mxnet.io", "external", 5),
        ("link", "#intro", "fragment", 5),
        ("image", "/assets/plot.png", "internal", 7),
        ("link", "mailto:team@example.org", "ignored", 9),
        ("link", "/r/2015/10/01/old/", "internal", 9),
        ("link", "../assets/data.csv", "internal", 11),
    ]
    assert references[0].text == "docs"
    assert references[2].text == ""


def test_classify_target_edge_cases() -> None:
    assert classify_target("") == "ignored"
    assert classify_target("//cdn.example.org/x.js") == "external"
    assert classify_target("ftp://files.example.org") == "external"
    assert classify_target("javascript:void(0)") == "ignored"
    assert classify_target("?page=2") == "ignored"
    assert classify_target("notes/draft.md") == "internal"


def test_scan_fences_follows_list_items() -> None:
    spans = scan_fences("- ```r\n  x <- 1\n  ```\n- next item\n")

    assert [(span.language, span.start_line, span.end_line) for span in spans] == [("r", 1, 3)]


def test_scan_fences_sees_fences_inside_block_quotes() -> None:
    spans = scan_fences("> ```\n> plain\n> ```\n\n> ```r\n> never closed\n")

    assert [(span.language, span.closed) for span in spans] == [(None, True), ("r", False)]
    assert spans[1].start_line == 5
