"""Click CLI: orchestrates config loading, client selection, the discussion and output."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from writers_room.agent import AgentRuntime
from writers_room.briefs import parse_brief
from writers_room.controller import SessionController
from writers_room.errors import ValidationError
from writers_room.events import (
    AgentError,
    AgentSpoke,
    BudgetWarning,
    DiscussionEvent,
    HumanInterventionAdded,
    SummarizationCompleted,
    SummarizationFailed,
)
from writers_room.healthcheck import run_health_checks
from writers_room.interventions import to_message
from writers_room.ledger import InMemoryUsageLedger
from writers_room.models import DiscussionOptions, TopicContext
from writers_room.output import print_message, print_report, save_transcript
from writers_room.personas import build_personas
from writers_room.providers.anthropic import AnthropicClient
from writers_room.providers.base import LLMClient
from writers_room.providers.gemini import GeminiClient
from writers_room.providers.openai_provider import OpenAIClient
from writers_room.quality import MarkerQualityEvaluator
from writers_room.retry import ExponentialBackoff
from writers_room.store import SqliteDiscussionStore
from writers_room.summarizer import SummarizationEngine

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

CLIENT_CLASSES: dict[str, type[LLMClient]] = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "gemini": GeminiClient,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_client(config: AppConfig, provider: str) -> LLMClient:
    """Instantiate the client for `provider`.

    Raises:
        click.UsageError: unknown provider, unknown sdk, or no API key.
    """
    if provider not in config.models:
        raise click.UsageError(f"Unknown provider '{provider}'. Known: {', '.join(sorted(config.models))}")
    if provider not in config.available_providers:
        raise click.UsageError(
            f"Provider '{provider}' has no API key. Set {config.models[provider].api_key_env} in .env."
        )
    model_cfg = config.models[provider]
    if model_cfg.sdk not in CLIENT_CLASSES:
        raise click.UsageError(f"Provider '{provider}' uses unsupported sdk '{model_cfg.sdk}'")
    return CLIENT_CLASSES[model_cfg.sdk](model_cfg)


def build_controller(
    config: AppConfig,
    client: LLMClient,
    ledger: InMemoryUsageLedger | None = None,
    store: SqliteDiscussionStore | None = None,
) -> SessionController:
    """Wire personas, runtime, summarizer and evaluator from the settings."""
    personas = build_personas(config.personas)
    retry_policy = ExponentialBackoff(**dataclasses.asdict(config.retry))
    runtime = AgentRuntime(client, config.prompts, retry_policy=retry_policy, ledger=ledger)
    summarizer = SummarizationEngine(client, config.prompts, config.summarization, ledger=ledger)
    mediator = next((p for p in personas if p.is_mediator), None)
    evaluator = MarkerQualityEvaluator(
        config.quality,
        acceptance_threshold=mediator.acceptance_threshold if mediator else 65.0,
    )
    return SessionController(
        personas,
        runtime,
        summarizer=summarizer,
        store=store,
        evaluator=evaluator,
    )


def _check_client(name: str, client: LLMClient) -> None:
    """Ping the client and exit when it does not answer."""
    console.print("\n[bold]Checking provider...[/bold]")
    result = asyncio.run(run_health_checks({name: client}))[name]
    if result.ok:
        console.print(f"  [green]OK  [/green] {name} ({result.model}, {result.latency_sec:.1f}s)\n")
        return
    short_err = result.error.splitlines()[0][:120] if result.error else "unknown error"
    kind = f" ({result.kind.value})" if result.kind else ""
    console.print(f"  [red]FAIL[/red] {name}{kind}: {short_err}")
    console.print("\n[bold red]Error:[/bold red] Provider failed the health check.")
    sys.exit(1)


def _print_event(progress: Progress, event: DiscussionEvent) -> None:
    if isinstance(event, AgentSpoke):
        print_message(event.message)
    elif isinstance(event, HumanInterventionAdded):
        print_message(to_message(event.intervention))
    elif isinstance(event, SummarizationCompleted):
        progress.print(f"[dim]Summarized messages {event.range[0] + 1}-{event.range[1]}[/dim]")
    elif isinstance(event, SummarizationFailed):
        progress.print(f"[yellow]Summarization failed:[/yellow] {event.error}")
    elif isinstance(event, AgentError):
        label = "retired" if event.fatal else "skipped a turn"
        progress.print(f"[red]{event.agent_id} {label}:[/red] {event.error[:120]}")
    elif isinstance(event, BudgetWarning):
        progress.print(f"[yellow]Budget exceeded ({event.cause}), continuing[/yellow]")


async def _run_discussion(
    controller: SessionController,
    topic: str,
    context: TopicContext,
    options: DiscussionOptions,
    notes: tuple[str, ...],
) -> str:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        controller.bus.subscribe("*", lambda event: _print_event(progress, event))
        progress.add_task("Discussion in progress...", total=None)
        discussion_id = await controller.start_discussion(topic, context, options)
        for note in notes:
            result = controller.add_human_intervention(note)
            if not result.success:
                logger.warning("Note not queued: %s", result.error)
        await controller.wait_for_completion(discussion_id)
    return discussion_id


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "brief_file", type=click.Path(exists=True), help="Read topic and setup from a brief .md file")
@click.option("--rounds", default=None, type=int, help="Maximum rounds (default: brief, then config)")
@click.option("--time-limit", "time_limit", default=None, type=float, help="Time limit in seconds")
@click.option("--auto-stop/--no-auto-stop", "auto_stop", default=None,
              help="End the discussion as soon as a budget is exhausted")
@click.option("--note", "notes", multiple=True, help="Human note injected at the next turn (repeatable)")
@click.option("--db", "db_path", default=None, help="Save the discussion to this SQLite file")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--provider", default=None, help="Which provider runs the personas (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    brief_file: str | None,
    rounds: int | None,
    time_limit: float | None,
    auto_stop: bool | None,
    notes: tuple[str, ...],
    db_path: str | None,
    output_path: str | None,
    provider: str | None,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """Writers' Room -- multi-agent story discussion.

    \b
    Examples:
      writers-room "A heist story told backwards" --rounds 2
      writers-room --file brief.md --no-auto-stop
      writers-room "Villain motivation" --note "consider a twist ending"
      writers-room "Chapter 3 outline" --db ./room.db --provider claude
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    context = TopicContext()
    brief_rounds: int | None = None
    brief_time_limit: float | None = None
    if brief_file:
        try:
            brief = parse_brief(Path(brief_file))
        except ValidationError as exc:
            console.print(f"[bold red]Brief error:[/bold red] {exc}")
            sys.exit(1)
        topic = brief.topic
        context = brief.context
        brief_rounds = brief.rounds
        brief_time_limit = brief.time_limit_sec
    elif not topic:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)

    # CLI flags win over the brief, the brief over the config defaults.
    defaults = config.defaults
    options = DiscussionOptions(
        max_rounds=next(v for v in (rounds, brief_rounds, defaults.max_rounds) if v is not None),
        time_limit_sec=next(
            (v for v in (time_limit, brief_time_limit) if v is not None), defaults.time_limit_sec
        ),
        auto_stop=defaults.auto_stop if auto_stop is None else auto_stop,
        save_to_database=bool(db_path) or defaults.save_to_database,
        human_intervention_enabled=defaults.human_intervention_enabled,
        token_limit=defaults.token_limit,
        context_messages=defaults.context_messages,
    )

    provider_name = provider or defaults.provider
    client = build_client(config, provider_name)
    if not skip_health_check:
        _check_client(provider_name, client)

    store = None
    if options.save_to_database:
        store = SqliteDiscussionStore(Path(db_path) if db_path else defaults.database_path)
    ledger = InMemoryUsageLedger()

    try:
        controller = build_controller(config, client, ledger=ledger, store=store)
    except ValidationError as exc:
        console.print(f"[bold red]Persona config error:[/bold red] {exc}")
        sys.exit(1)

    console.print(
        f"\n[bold cyan]Writers' Room[/bold cyan] {len(controller.get_agents())} personas, "
        f"up to {options.max_rounds} rounds on {client.model_string()}"
    )
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    try:
        discussion_id = asyncio.run(_run_discussion(controller, topic, context, options, notes))
    except ValidationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    discussion = controller.get_discussion(discussion_id)
    report = controller.get_report(discussion_id)
    print_report(report)
    for stats in ledger.query_stats():
        console.print(
            f"[dim]{stats.provider}/{stats.model}: {stats.request_count} calls "
            f"({stats.error_count} failed), {stats.total_tokens} tokens, ${stats.total_cost:.4f}[/dim]"
        )

    output_dir = Path(output_path) if output_path else defaults.output_dir
    saved_path = save_transcript(discussion, report, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    if report.error:
        sys.exit(1)


if __name__ == "__main__":
    main()
