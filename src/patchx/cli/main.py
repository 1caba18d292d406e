"""Command-line interface for PatchX."""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from patchx import __version__
from patchx.analysis.conflict_detector import ConflictDetector, ResolutionChoice
from patchx.config.exceptions import ConfigError
from patchx.config.runtime_config import RuntimeConfig, StoreBackend
from patchx.core.models import ChangeStatus
from patchx.exceptions import PatchXError
from patchx.integrations.gerrit import GerritClient
from patchx.llm.config import load_provider_settings_from_env
from patchx.llm.exceptions import LLMError
from patchx.llm.factory import create_providers_from_settings
from patchx.orchestration.status import StatusReporter
from patchx.patch.validator import PatchValidator
from patchx.resolution.engine import ConflictResolutionEngine
from patchx.resolution.report import build_resolution_report, review_resolution
from patchx.services import build_store
from patchx.storage.repositories import SubmissionRepository

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def load_runtime_config(config_path: Path | None = None, **cli_overrides: object) -> RuntimeConfig:
    """Resolve configuration: CLI flags > env vars > config file > defaults.

    Raises:
        ConfigError: If any source holds an invalid value.
    """
    base = RuntimeConfig.from_file(config_path) if config_path else None
    return RuntimeConfig.from_env(base=base).merge_with_cli(**cli_overrides)


def _configure_logging(runtime_config: RuntimeConfig) -> None:
    log_handler = (
        logging.FileHandler(runtime_config.log_file)
        if runtime_config.log_file
        else logging.StreamHandler()
    )
    logging.basicConfig(
        level=getattr(logging, runtime_config.log_level),
        format=LOG_FORMAT,
        handlers=[log_handler],
        force=True,
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise click.ClickException(f"{path} is not valid UTF-8 text") from e
    except OSError as e:
        raise click.ClickException(f"Failed to read {path}: {e}") from e


def _preview(text: str, width: int = 60) -> str:
    text = text.replace("\t", "    ")
    return text if len(text) <= width else text[: width - 1] + "…"


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or TOML configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Log to this file"
)
@click.option(
    "--store-backend",
    type=click.Choice([b.value for b in StoreBackend], case_sensitive=False),
    help="Persistence backend",
)
@click.option(
    "--store-path",
    type=click.Path(file_okay=False, path_type=Path),
    help="File store directory",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    store_backend: str | None,
    store_path: Path | None,
) -> None:
    """PatchX: validate patches, resolve conflicts and submit to Gerrit."""
    try:
        runtime_config = load_runtime_config(
            config_path,
            log_level=log_level,
            log_file=str(log_file) if log_file else None,
            store_backend=store_backend,
            store_path=str(store_path) if store_path else None,
        )
    except ConfigError as e:
        console.print(f"[red]❌ Configuration error: {e}[/red]")
        raise click.Abort() from e
    _configure_logging(runtime_config)
    ctx.obj = runtime_config


@cli.command()
@click.option("--host", help="Bind address (default from config)")
@click.option("--port", type=int, help="Bind port (default from config)")
@click.pass_obj
def serve(runtime_config: RuntimeConfig, host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from patchx.api.app import create_app

    try:
        runtime_config = runtime_config.merge_with_cli(api_host=host, api_port=port)
    except ConfigError as e:
        console.print(f"[red]❌ Configuration error: {e}[/red]")
        raise click.Abort() from e

    console.print(
        f"Starting PatchX API on http://{runtime_config.api_host}:{runtime_config.api_port} "
        f"[dim](store: {runtime_config.store_backend})[/dim]"
    )
    uvicorn.run(
        create_app(config=runtime_config),
        host=runtime_config.api_host,
        port=runtime_config.api_port,
        log_level=runtime_config.log_level.lower(),
    )


@cli.command()
@click.argument("patch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def validate(ctx: click.Context, patch_file: Path) -> None:
    """Validate a unified-diff PATCH_FILE and print per-file counts."""
    validator = PatchValidator()
    content = _read_text(patch_file)
    result = validator.validate(content)
    if not result.valid:
        console.print(f"[red]❌ {patch_file}: {result.error}[/red]")
        ctx.exit(1)

    parsed = validator.parse(content)
    table = Table(title=f"Patch: {patch_file.name}")
    table.add_column("File", style="cyan")
    table.add_column("Additions", style="green", justify="right")
    table.add_column("Deletions", style="red", justify="right")
    for stats in parsed.files:
        table.add_row(stats.path, str(stats.additions), str(stats.deletions))
    console.print(table)
    console.print(
        f"✅ Valid patch: {len(parsed.files)} file(s), "
        f"+{parsed.total_additions} -{parsed.total_deletions}"
    )


@cli.command()
@click.argument("base", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("incoming", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("current", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--auto", "auto_resolve", is_flag=True, help="Auto-resolve simple conflicts")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the merged file here",
)
def conflicts(
    base: Path, incoming: Path, current: Path, auto_resolve: bool, output: Path | None
) -> None:
    """Compare BASE, INCOMING and CURRENT line by line and report conflicts."""
    base_text, incoming_text, current_text = (_read_text(p) for p in (base, incoming, current))
    detector = ConflictDetector()
    diff = detector.three_way(base_text, incoming_text, current_text)

    if not diff.conflicts:
        console.print("✅ No conflicts detected")
    else:
        table = Table(title="Conflict Analysis")
        table.add_column("Line", style="cyan", justify="right")
        table.add_column("Type", style="yellow")
        table.add_column("Original", style="dim")
        table.add_column("Incoming", style="green")
        table.add_column("Current", style="magenta")
        for conflict in diff.conflicts:
            table.add_row(
                str(conflict.line_number),
                conflict.conflict_type.value,
                _preview(conflict.original),
                _preview(conflict.incoming),
                _preview(conflict.current),
            )
        console.print(table)
        console.print(f"\n📊 Found {len(diff.conflicts)} conflicts")

    choices: dict[int, ResolutionChoice] = {}
    if auto_resolve and diff.conflicts:
        auto = detector.auto_resolve_simple_conflicts(diff)
        choices = auto.choices
        console.print(f"[dim]{auto.explanation}[/dim]")

    merged = detector.apply_resolutions(diff, choices)
    review = review_resolution(merged, base_text, incoming_text)
    console.print(Panel(build_resolution_report(diff, choices, review), title="Report"))

    if output:
        try:
            output.write_text(merged, encoding="utf-8")
        except OSError as e:
            raise click.ClickException(f"Failed to write {output}: {e}") from e
        console.print(f"Merged file written to {output}")


@cli.command()
@click.option("--test", "run_test", is_flag=True, help="Send a sample conflict to each provider")
@click.pass_obj
def providers(runtime_config: RuntimeConfig, run_test: bool) -> None:
    """List configured AI providers, optionally testing each one."""
    try:
        settings = load_provider_settings_from_env()
        configured = create_providers_from_settings(
            settings, timeout=int(runtime_config.provider_timeout)
        )
    except (ConfigError, LLMError) as e:
        console.print(f"[red]❌ Provider configuration error: {e}[/red]")
        raise click.Abort() from e

    if not configured:
        console.print(
            "[yellow]⚠ No AI provider configured. Set OPENAI_API_KEY, ANTHROPIC_API_KEY, "
            "or CUSTOM_AI_BASE_URL and CUSTOM_AI_API_KEY.[/yellow]"
        )
        return

    table = Table(title="AI Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Model", style="yellow")
    table.add_column("Base URL", style="dim")
    for name, entry in settings.items():
        table.add_row(name, entry.model, entry.base_url or "(SDK default)")
    console.print(table)

    if not run_test:
        return

    engine = ConflictResolutionEngine(
        configured,
        provider_timeout=runtime_config.provider_timeout,
        max_tokens=runtime_config.ai_max_tokens,
    )
    results = asyncio.run(engine.test_providers())
    results_table = Table(title="Provider Test")
    results_table.add_column("Provider", style="cyan")
    results_table.add_column("Result")
    results_table.add_column("Latency", justify="right")
    results_table.add_column("Error", style="red")
    for result in results:
        results_table.add_row(
            result.provider,
            "[green]OK[/green]" if result.success else "[red]FAILED[/red]",
            f"{result.latency} ms",
            result.error or "",
        )
    console.print(results_table)


@cli.command()
@click.argument("submission_id")
@click.option("--review", is_flag=True, help="Also query Gerrit for the change state")
@click.pass_context
def status(ctx: click.Context, submission_id: str, review: bool) -> None:
    """Show the persisted status of SUBMISSION_ID."""
    runtime_config: RuntimeConfig = ctx.obj
    if runtime_config.store_backend is StoreBackend.MEMORY:
        console.print(
            "[yellow]⚠ The memory store only holds submissions from this process; "
            "use --store-backend file to read a shared store.[/yellow]"
        )
    reporter = StatusReporter(
        SubmissionRepository(build_store(runtime_config)), log_tail=runtime_config.status_log_tail
    )
    try:
        view = reporter.get_status(submission_id)
    except PatchXError as e:
        console.print(f"[red]❌ {e}[/red]")
        ctx.exit(1)

    color = {"completed": "green", "failed": "red"}.get(view.status.value, "blue")
    console.print(f"Submission {submission_id}: [{color}]{view.status.value}[/{color}]")
    if view.change_url:
        console.print(f"Gerrit change: {view.change_url}")
    if view.error:
        console.print(f"[red]Error: {view.error}[/red]")
    if view.logs:
        title = f"Logs ({len(view.logs)}/{view.total_logs})"
        console.print(Panel("\n".join(view.logs), title=title))

    if review:
        try:
            change = asyncio.run(_review_status(runtime_config, reporter, submission_id))
        except PatchXError as e:
            console.print(f"[red]❌ Review status unavailable: {e}[/red]")
            ctx.exit(1)
        console.print(
            f"Review: {change.status} "
            f"(mergeable={change.mergeable}, submittable={change.submittable})"
        )


async def _review_status(
    runtime_config: RuntimeConfig, reporter: StatusReporter, submission_id: str
) -> ChangeStatus:
    client = GerritClient(
        runtime_config.gerrit_base_url,
        runtime_config.gerrit_username,
        runtime_config.gerrit_password,
        request_timeout=runtime_config.gerrit_timeout,
    )
    reporter.code_review = client
    try:
        return await reporter.get_review_status(submission_id)
    finally:
        await client.aclose()


if __name__ == "__main__":
    cli()
