"""CLI entrypoints for postkit."""

import contextlib
from dataclasses import dataclass
import shutil
import time
import webbrowser
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Annotated, Any, Iterator, Sequence

import typer
from rich.console import Console
from rich.tree import Tree

from .articles import PageWriteResult, PostPageRenderer, publishable, write_post_pages
from .config import CONFIG_FILENAME, Config, load_config
from .content import FrontMatterError, PostDocument, load_post
from .feeds import generate_feed
from .ingest import load_posts
from .layouts import LayoutError
from .permalinks import PermalinkError
from .reporting import (
    BuildReport,
    assemble_report,
    build_block_stats,
    build_document_stats,
    write_report,
)
from .scaffold import ScaffoldError, ScaffoldResult, normalize_slug, scaffold_post
from .staging import StagingResult, reset_directory, stage_static_files
from .state import BuildTracker, ChangeSummary
from .structure import check_heading_hierarchy, scan_fences
from .validation import DocumentIssue, DocumentValidationError, IssueSeverity, lint_workspace
from .verify import VerificationReport, check_reproducible, verify_site

console = Console()
app = typer.Typer(help="postkit: lint, render and verify Jekyll-style blog posts.")

ConfigPathOption = Annotated[
    str,
    typer.Option("--config", "-c", help="Path to the configuration file or project directory."),
]
ForceFlag = Annotated[
    bool,
    typer.Option("--force", "-f", help="Overwrite existing files or clear previous output."),
]


@dataclass(slots=True)
class BuildOutputs:
    """Aggregate results from the main build pipeline."""

    report: BuildReport
    pages: PageWriteResult
    feed_path: Path | None
    staging: StagingResult
    report_path: Path


@app.command()
def new(  # noqa: PLR0913
    slug: Annotated[
        str,
        typer.Argument(..., help="Slug used in the post filename and URL."),
    ],
    title: Annotated[
        str | None,
        typer.Option("--title", "-t", help="Override the default title derived from the slug."),
    ] = None,
    author: Annotated[
        str | None,
        typer.Option("--author", "-a", help="Author name; defaults to site.author."),
    ] = None,
    categories: Annotated[
        list[str] | None,
        typer.Option("--category", help="Category for the post (repeatable)."),
    ] = None,
    config_path: ConfigPathOption = CONFIG_FILENAME,
    force: ForceFlag = False,
) -> None:
    """Create a dated post with a complete front matter block."""
    try:
        normalized_slug = normalize_slug(slug)
    except ScaffoldError as exc:
        console.print(f"[bold red]Cannot scaffold[/]: {exc}")
        raise typer.Exit(code=1) from exc

    config: Config = _load(config_path)

    try:
        result = scaffold_post(
            config,
            normalized_slug,
            title,
            author=author,
            categories=categories or (),
            force=force,
        )
    except ScaffoldError as exc:
        console.print(f"[bold red]Cannot scaffold[/]: {exc}")
        raise typer.Exit(code=1) from exc

    if normalized_slug != slug:
        console.print(f"[bold yellow]Note[/]: slug normalized to '{normalized_slug}'.")

    _print_scaffold_summary(normalized_slug, result)


@app.command()
def lint(
    config_path: ConfigPathOption = CONFIG_FILENAME,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Treat warnings as errors."),
    ] = False,
) -> None:
    """Check front matter, fences, headings and internal links of every post."""
    config: Config = _load(config_path)
    report = lint_workspace(config)

    if report.external_links:
        console.print(
            f"[bold blue]External links[/]: {len(report.external_links)} collected "
            "(not checked for reachability)."
        )

    if not report.issues:
        console.print(
            f"[bold green]Lint clean[/]: no issues detected across {report.document_count} post(s)."
        )
        raise typer.Exit()

    for issue in sorted(report.issues, key=_lint_sort_key):
        style = "red" if issue.severity is IssueSeverity.ERROR else "yellow"
        location = issue.source_path
        if issue.pointer:
            location = f"{location} :: {issue.pointer}"
        console.print(f"[bold {style}]{issue.severity.name}[/] {location} - {issue.message}")

    console.print(
        f"[bold blue]Summary[/]: {report.error_count} error(s), {report.warning_count} warning(s) "
        f"across {report.document_count} post(s)."
    )

    exit_code = 0
    if report.error_count > 0 or (strict and report.warning_count > 0):
        exit_code = 1
    raise typer.Exit(code=exit_code)


@app.command()
def outline(
    post: Annotated[
        Path,
        typer.Argument(..., help="Markdown post to inspect."),
    ],
    base_level: Annotated[
        int,
        typer.Option("--base-level", min=1, max=6, help="Heading level the outline starts at."),
    ] = 1,
) -> None:
    """Print a post's title, heading tree and fenced code blocks."""
    if not post.is_file():
        raise typer.BadParameter(f"Post not found: {post}")
    try:
        document = load_post(post)
    except FrontMatterError as exc:
        console.print(f"[bold red]Cannot read post[/]: {exc}")
        raise typer.Exit(code=1) from exc

    tree = Tree(f"[bold]{document.title}[/]")
    branches: list[tuple[int, Tree]] = [(0, tree)]
    for heading in document.outline:
        while len(branches) > 1 and branches[-1][0] >= heading.level:
            branches.pop()
        node = branches[-1][1].add(f"h{heading.level} {heading.text} [dim]#{heading.anchor}[/]")
        branches.append((heading.level, node))
    console.print(tree)

    fences = scan_fences(document.body, line_offset=document.body_offset)
    for fence in fences:
        language = fence.language or "no language"
        if fence.closed:
            console.print(f"- code ({language}) lines {fence.start_line}-{fence.end_line}")
        else:
            console.print(f"[bold red]- code ({language}) opened at line {fence.start_line} is never closed[/]")

    skips = check_heading_hierarchy(document.outline, base_level=base_level)
    for skip in skips:
        console.print(f"[bold red]heading-skip[/] line {skip.line}: {skip.message}")

    if skips or any(not fence.closed for fence in fences):
        raise typer.Exit(code=1)


@app.command()
def build(
    config_path: ConfigPathOption = CONFIG_FILENAME,
    force: ForceFlag = False,
) -> None:
    """Render every published post, the index, the feed and the build report."""
    config: Config = _load(config_path)
    tracker = BuildTracker(config, _config_file(config_path))
    fingerprints = tracker.compute_fingerprints()
    change_summary = tracker.summarize_changes(fingerprints)

    _prepare_output_directory(config, change_summary, force)
    documents = _load_build_documents(config)
    outputs = _generate_site_artifacts(config, documents, tracker, force=force)

    _print_build_summary(config, outputs)
    tracker.persist(fingerprints, outputs.pages.written, outputs.staging.staged_paths)

    if outputs.report.warnings:
        console.print("[bold yellow]Warnings:[/]")
        for warning in outputs.report.warnings:
            console.print(f"- {warning}")


def _prepare_output_directory(config: Config, change_summary: ChangeSummary, force: bool) -> None:
    if force:
        console.print("[bold yellow]Force rebuild[/]: clearing the output directory before regenerating.")
        reset_directory(config.output_dir)
        return

    config.output_dir.mkdir(parents=True, exist_ok=True)

    if change_summary.first_run:
        console.print("[bold yellow]Build[/]: initializing cache; no previous state detected.")
        return

    if change_summary.changed_keys:
        categories = ", ".join(sorted(change_summary.changed_keys))
        console.print(f"[bold green]Build[/]: changes detected in {categories}.")
        return

    console.print("[bold blue]Build[/]: no input changes detected since the last build.")


def _load_build_documents(config: Config) -> list[PostDocument]:
    try:
        return load_posts(config)
    except (DocumentValidationError, FrontMatterError) as error:
        console.print(f"[bold red]Validation failed[/]: {error}")
        raise typer.Exit(code=1) from error


def _generate_site_artifacts(
    config: Config,
    documents: Sequence[PostDocument],
    tracker: BuildTracker,
    *,
    force: bool,
) -> BuildOutputs:
    start = time.perf_counter()
    posts = publishable(documents)
    previous_pages = None if force else tracker.previous_page_paths
    previous_static = None if force else tracker.previous_static_paths

    try:
        pages = write_post_pages(documents, config, previous_paths=previous_pages)
    except (LayoutError, PermalinkError) as error:
        console.print(f"[bold red]Render failed[/]: {error}")
        raise typer.Exit(code=1) from error

    feed_path = generate_feed(config, posts)
    staging = stage_static_files(config, previous_paths=previous_static)

    warnings = [
        f"{document.source_path}: skipped (published: false)"
        for document in documents
        if not document.published
    ]
    warnings.extend(
        f"{document.source_path}: skipped (no date)"
        for document in documents
        if document.published and document.meta.date is None
    )

    report = assemble_report(
        project=config.project_name,
        duration_seconds=time.perf_counter() - start,
        documents=build_document_stats(documents),
        blocks=build_block_stats(posts),
        pages_written=len(pages.written),
        pages_pruned=len(pages.pruned),
        feed_path=feed_path,
        warnings=warnings,
    )
    report_path = write_report(report, config.output_dir)

    return BuildOutputs(
        report=report,
        pages=pages,
        feed_path=feed_path,
        staging=staging,
        report_path=report_path,
    )


def _print_build_summary(config: Config, outputs: BuildOutputs) -> None:
    report = outputs.report
    documents = report.documents
    blocks = report.blocks

    console.print(
        "[bold green]Posts[/]: "
        f"{documents.total} "
        f"(published {documents.published}, unpublished {documents.unpublished})"
    )
    console.print(
        "[bold green]Pages[/]: "
        f"rendered {report.pages_written} page(s) in {_display_path(config.output_dir)}"
    )
    if report.pages_pruned:
        console.print(f"[bold yellow]Pages[/]: removed {report.pages_pruned} stale page(s)")

    languages = ", ".join(f"{name} x{count}" for name, count in blocks.languages.items())
    console.print(
        "[bold green]Blocks[/]: "
        f"{blocks.headings} heading(s), {blocks.code_blocks} code block(s), {blocks.images} image(s)"
        + (f" ({languages})" if languages else "")
    )

    if outputs.feed_path:
        console.print(f"[bold green]Feed[/]: generated {_display_path(outputs.feed_path)}")

    staging = outputs.staging
    if staging.total:
        console.print(
            "[bold green]Static files[/]: "
            f"staged {staging.total} file(s) into {_display_path(config.output_dir / config.static_dir.name)}"
        )
    else:
        console.print(
            "[bold yellow]Static files[/]: "
            f"no files found at {_display_path(config.static_dir)}"
        )
    if staging.removed_paths:
        console.print(
            f"[bold yellow]Static files[/]: removed {len(staging.removed_paths)} stale file(s)"
        )

    console.print(f"[bold green]Report[/]: {_display_path(outputs.report_path)}")


@app.command()
def verify(
    config_path: ConfigPathOption = CONFIG_FILENAME,
    reproducible: Annotated[
        bool,
        typer.Option(
            "--reproducible/--no-reproducible",
            help="Re-render every post and compare it with the output on disk.",
        ),
    ] = True,
    report_path: Annotated[
        str | None,
        typer.Option("--report", help="Optional path for a plain-text verification report."),
    ] = None,
) -> None:
    """Verify links, titles and heading structure of the rendered site."""
    config: Config = _load(config_path)
    output_dir = Path(config.output_dir)
    if not output_dir.exists():
        console.print(f"[bold red]Site output not found[/]: {output_dir}")
        console.print("Run 'postkit build' before verifying.")
        raise typer.Exit(code=1)

    report = verify_site(output_dir)
    _print_verification_report(report)

    reproducibility: VerificationReport | None = None
    if reproducible:
        documents = _load_build_documents(config)
        try:
            reproducibility = check_reproducible(documents, PostPageRenderer(config))
        except (LayoutError, PermalinkError) as error:
            console.print(f"[bold red]Render failed[/]: {error}")
            raise typer.Exit(code=1) from error
        _print_reproducibility_report(reproducibility)

    if report_path:
        target = Path(report_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(
                _render_verification_text(report, output_dir, reproducibility),
                encoding="utf-8",
            )
            console.print(f"[bold green]Report written[/]: {_display_path(target)}")
        except OSError as exc:
            console.print(f"[bold red]Failed to write report[/]: {exc}")
            raise typer.Exit(code=1) from exc

    exit_code = 1 if report.error_count > 0 else 0
    if reproducibility and reproducibility.error_count > 0:
        exit_code = 1
    raise typer.Exit(code=exit_code)


@app.command()
def preview(
    config_path: ConfigPathOption = CONFIG_FILENAME,
    host: Annotated[
        str,
        typer.Option("--host", help="Host interface to bind the preview server."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port for the preview server."),
    ] = 4000,
    open_browser: Annotated[
        bool,
        typer.Option(
            "--open-browser/--no-open-browser",
            help="Automatically open the site in a browser after starting.",
        ),
    ] = False,
) -> None:
    """Serve the generated site directory with a simple HTTP server."""
    config: Config = _load(config_path)
    if port < 0 or port > 65535:
        raise typer.BadParameter("Port must be between 0 and 65535.")

    output_dir = Path(config.output_dir)
    if not output_dir.exists():
        console.print(f"[bold red]Site output not found[/]: {output_dir}")
        console.print("Run 'postkit build' to generate the site before previewing.")
        raise typer.Exit(code=1)

    if not any(output_dir.iterdir()):
        console.print(
            "[bold yellow]Warning[/]: "
            f"{output_dir} is empty. Run 'postkit build' to populate the site."
        )

    handler = _make_request_handler(output_dir)

    try:
        with _serve(host, port, handler) as server:
            raw_host = server.server_address[0]
            bound_host = (
                raw_host.decode("utf-8", "ignore") if isinstance(raw_host, bytes) else str(raw_host)
            )
            bound_port = int(server.server_address[1])
            url_host = "127.0.0.1" if bound_host in {"0.0.0.0", ""} else bound_host
            site_url = f"http://{url_host}:{bound_port}/"
            console.print(
                f"[bold green]Preview server[/]: serving {output_dir} at {site_url} "
                "(press Ctrl+C to stop)"
            )
            if open_browser:
                webbrowser.open(site_url)
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                console.print("\n[bold yellow]Stopping preview server...[/]")
    except OSError as exc:
        console.print(f"[bold red]Failed to start preview server[/]: {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def clean(
    config_path: ConfigPathOption = CONFIG_FILENAME,
    include_cache: Annotated[
        bool,
        typer.Option("--cache", help="Also remove the configured cache directory."),
    ] = False,
) -> None:
    """Remove the generated site and optionally the build cache."""
    config: Config = _load(config_path)
    targets: list[tuple[str, Path]] = [("site output", Path(config.output_dir))]
    if include_cache:
        targets.append(("cache", Path(config.cache_dir)))

    removed = 0
    for label, path in targets:
        if path.exists():
            console.print(f"[bold green]Removing[/]: {label} ({path})")
            _remove_path(path)
            removed += 1
        else:
            console.print(f"[bold yellow]Skipping[/]: {label} ({path}) not found")

    noun = "directory" if removed == 1 else "directories"
    console.print(f"[bold green]Clean complete[/]: removed {removed} {noun}.")


def _print_scaffold_summary(slug: str, result: ScaffoldResult) -> None:
    console.print(f"[bold green]Scaffold ready[/]: post '{slug}'")

    for path in result.created:
        console.print(f"- {_display_path(path)} (new)")
    for path in result.updated:
        console.print(f"- {_display_path(path)} (updated)")

    if result.notes:
        console.print("[bold blue]Next steps[/]:")
        for note in result.notes:
            console.print(f"- {note}")


def _lint_sort_key(issue: DocumentIssue) -> tuple[int, str, str]:
    severity_order = 0 if issue.severity is IssueSeverity.ERROR else 1
    pointer = issue.pointer or ""
    return (severity_order, issue.source_path, pointer)


def _display_path(path: Path) -> str:
    try:
        return path.relative_to(Path.cwd()).as_posix()
    except ValueError:
        return path.as_posix()


def _print_verification_report(report: VerificationReport) -> None:
    if not report.issues:
        console.print(
            "[bold green]Verification complete[/]: "
            f"{report.scanned_files} HTML file(s) scanned; no issues found."
        )
        return

    console.print(
        "[bold red]Verification issues[/]: "
        f"{len(report.issues)} issue(s) detected across {report.scanned_files} file(s)."
    )
    for issue in report.issues:
        color = "yellow" if issue.kind == "warning" else "red"
        console.print(
            f"[bold {color}]{issue.kind}[/] "
            f"{_display_path(issue.source)} -> {issue.target} :: {issue.message}"
        )


def _print_reproducibility_report(report: VerificationReport) -> None:
    if not report.issues:
        console.print(
            "[bold green]Reproducible[/]: "
            f"{report.scanned_files} post(s) render to identical bytes."
        )
        return

    console.print(
        "[bold red]Reproducibility issues[/]: "
        f"{len(report.issues)} of {report.scanned_files} post(s) differ."
    )
    for issue in report.issues:
        console.print(
            f"[bold red]{issue.kind}[/] {_display_path(issue.source)} -> {issue.target} :: {issue.message}"
        )


def _render_verification_text(
    report: VerificationReport,
    output_dir: Path,
    reproducibility: VerificationReport | None = None,
) -> str:
    lines = [
        "postkit site verification report",
        f"Output directory: {output_dir.resolve().as_posix()}",
        f"HTML files scanned: {report.scanned_files}",
        f"Issues detected: {len(report.issues)}",
        "",
    ]
    if not report.issues:
        lines.append("No issues detected.")
    else:
        for issue in report.issues:
            lines.append(
                f"- [{issue.kind}] "
                f"{issue.source.resolve().as_posix()} -> {issue.target}: {issue.message}"
            )
    if reproducibility:
        lines.append("")
        lines.append("Reproducibility summary")
        lines.append(f"Posts re-rendered: {reproducibility.scanned_files}")
        lines.append(f"Differences: {len(reproducibility.issues)}")
        for issue in reproducibility.issues:
            lines.append(f"- [{issue.kind}] {issue.source.as_posix()} -> {issue.target}: {issue.message}")
    lines.append("")
    return "\n".join(lines)


def _load(path: str) -> Config:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Config file not found: {path}") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _config_file(path: str) -> Path:
    candidate = Path(path)
    return candidate / CONFIG_FILENAME if candidate.is_dir() else candidate


class _ThreadingHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True


def _make_request_handler(directory: Path) -> type[SimpleHTTPRequestHandler]:
    directory_path = str(directory)

    class PreviewRequestHandler(SimpleHTTPRequestHandler):
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            super().__init__(*args, directory=directory_path, **kwargs)

    return PreviewRequestHandler


@contextlib.contextmanager
def _serve(
    host: str,
    port: int,
    handler: type[SimpleHTTPRequestHandler],
) -> Iterator[ThreadingHTTPServer]:
    server = _ThreadingHTTPServer((host, port), handler)
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()


def _remove_path(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
    elif path.exists():
        path.unlink(missing_ok=True)
