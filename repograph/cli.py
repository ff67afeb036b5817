"""Typer-based CLI for repograph."""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from . import __version__, config_manager
from .config import DEFAULT_LLM_CONFIGS, SUPPORTED_PROVIDERS
from .export import to_dot, to_json, write_export
from .languages import PATTERN_EXTENSIONS, SCRIPT_EXTENSIONS
from .pipeline import analyze
from .resolver import load_alias_table
from .scanner import load_files

app = typer.Typer(
    help="🗺️  repograph: file and function dependency graphs for source repositories.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

err_console = Console(stderr=True)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"repograph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """repograph: static import/call graphs with optional LLM enrichment."""
    pass


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def print_success(message: str):
    typer.echo(typer.style(f"✓ {message}", fg=typer.colors.GREEN), err=True)


def print_error(message: str):
    typer.echo(typer.style(f"✗ {message}", fg=typer.colors.RED), err=True)


@app.command("analyze")
def analyze_repository(
    path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository checkout to analyse."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the graph to this file instead of stdout."),
    fmt: str = typer.Option("json", "--format", "-f", help="Output format: json or dot."),
    view: str = typer.Option("files", "--view", help="Graph rendered by --format dot: files or functions."),
    no_llm: bool = typer.Option(False, "--no-llm", help="Skip LLM relationship inference."),
    max_files: Optional[int] = typer.Option(None, "--max-files", min=0, help="Cap on analysed files."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr."),
):
    """Analyse a local repository and emit its file and function graphs."""
    fmt = fmt.lower()
    if fmt not in ("json", "dot"):
        raise typer.BadParameter("--format must be 'json' or 'dot'.")
    view = view.lower()
    if view not in ("files", "functions"):
        raise typer.BadParameter("--view must be 'files' or 'functions'.")

    _configure_logging(verbose)
    settings = config_manager.load_settings()

    try:
        files = load_files(path)
    except OSError as exc:
        print_error(f"Cannot read {path}: {exc}")
        raise typer.Exit(code=1)
    alias_table = load_alias_table(files)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=err_console,
        transient=True,
    ) as progress:
        task = progress.add_task("Analyzing...", total=None)

        def on_progress(event) -> None:
            progress.update(
                task,
                description=event.message,
                completed=event.files_analyzed,
                total=event.total_files,
            )

        result = analyze(
            files,
            alias_table,
            max_files=max_files,
            llm_enabled=not no_llm,
            on_progress=on_progress,
            settings=settings,
            root_label=path.resolve().name,
        )

    if output:
        write_export(result, output, fmt, view)
        print_success(f"Wrote {fmt.upper()} graph to {output}")
    else:
        typer.echo(to_dot(result, view) if fmt == "dot" else to_json(result))

    stats = result.stats
    err_console.print(
        f"[bold]{stats.file_count}[/] files · [bold]{stats.directory_count}[/] directories · "
        f"[bold]{stats.function_count}[/] functions · {stats.duration_ms} ms"
    )
    for warning in result.warnings:
        err_console.print(f"[yellow]⚠ {warning}[/]", markup=True, highlight=False)


@app.command("languages")
def list_languages():
    """List supported languages and how each is analysed."""
    extensions: Dict[str, List[str]] = defaultdict(list)
    for ext, lang in SCRIPT_EXTENSIONS.items():
        extensions[lang].append(ext)
    for ext, lang in PATTERN_EXTENSIONS.items():
        extensions[lang].append(ext)

    table = Table(title="Supported languages")
    table.add_column("Language", style="cyan")
    table.add_column("Extractor")
    table.add_column("Extensions", style="dim")
    script_languages = set(SCRIPT_EXTENSIONS.values())
    for lang in sorted(extensions, key=lambda name: (name not in script_languages, name)):
        strategy = "syntax tree" if lang in script_languages else "patterns"
        table.add_row(lang, strategy, " ".join(sorted(extensions[lang])))
    Console().print(table)


@app.command("show-llm")
def show_llm():
    """Show the effective LLM provider configuration."""
    settings = config_manager.load_settings()
    typer.echo(f"  Provider  {typer.style(settings.llm_provider, fg=typer.colors.CYAN, bold=True)}")
    typer.echo(f"  Model     {settings.llm_model}")
    typer.echo(f"  Endpoint  {settings.llm_endpoint}")
    typer.echo(f"  API Key   {settings.masked_api_key}")
    typer.echo(f"  Config    {config_manager.config.CONFIG_FILE}")
    if not settings.has_llm_credential:
        typer.echo(typer.style("  LLM enrichment is disabled until an API key is configured.", dim=True))


@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help=f"LLM provider: {', '.join(SUPPORTED_PROVIDERS)}"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Switch the LLM provider used for relationship inference.

    Examples:
        repograph set-llm openai -k YOUR_API_KEY
        repograph set-llm ollama -m qwen2.5-coder:7b
    """
    provider = provider.lower().strip()
    if provider not in SUPPORTED_PROVIDERS:
        print_error(f"Unknown provider '{provider}'. Choose from: {', '.join(SUPPORTED_PROVIDERS)}")
        raise typer.Exit(code=1)

    resolved_api_key = api_key or ""
    if provider != "ollama" and not resolved_api_key:
        current = config_manager.load_config()
        if current.get("provider") == provider and current.get("api_key"):
            resolved_api_key = current["api_key"]
        else:
            resolved_api_key = typer.prompt(f"Enter your {provider} API key", hide_input=True)

    resolved_model = model or DEFAULT_LLM_CONFIGS[provider]["model"]
    if not config_manager.save_llm_config(provider, resolved_model, resolved_api_key, endpoint or ""):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)

    print_success(f"LLM provider set to: {provider}")
    typer.echo(f"  Provider: {typer.style(provider, fg=typer.colors.CYAN)}")
    typer.echo(f"  Model:    {typer.style(resolved_model, fg=typer.colors.CYAN)}")
    if endpoint:
        typer.echo(f"  Endpoint: {endpoint}")


if __name__ == "__main__":
    app()
