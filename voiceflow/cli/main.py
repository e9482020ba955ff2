"""CLI entry point for VoiceFlow."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional
import click
import structlog

from .console import ConsoleRenderer, HELP_TEXT, run_console
from ..config.settings import settings
from ..core.conversation_manager import ConversationConfig, ConversationManager
from ..metrics.collector import MetricsCollector
from ..providers import registry
from ..state.history import HistoryStore
from ..utils.logging import setup_logging


logger = structlog.get_logger()


def validate_provider(ctx, param, value):
    """Validate provider selection."""
    if value is None:
        return value

    if param.name == "capture_provider":
        valid_providers = registry.list_capture_providers()
        provider_type = "capture"
    elif param.name == "inference_provider":
        valid_providers = registry.list_inference_providers()
        provider_type = "inference"
    elif param.name == "playback_provider":
        valid_providers = registry.list_playback_providers()
        provider_type = "playback"
    else:
        return value

    if value not in valid_providers:
        raise click.BadParameter(
            f"Invalid {provider_type} provider '{value}'. "
            f"Available options: {', '.join(valid_providers)}"
        )
    return value


def _load_settings(config: Optional[str]) -> None:
    if config:
        settings.config_file = Path(config)
        settings.load_from_file()
        settings.load_from_env()

    for issue in settings.validate():
        logger.warning("Configuration issue", issue=issue)


def _configure_logging(debug: bool) -> None:
    setup_logging(
        debug=debug,
        log_file=settings.logging.file_enabled,
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        file_rotation_mb=settings.logging.file_rotation_mb,
        file_backup_count=settings.logging.file_backup_count,
    )


@click.command()
@click.option(
    "--capture-provider",
    callback=validate_provider,
    default=None,
    help="Capture provider to use",
)
@click.option(
    "--inference-provider",
    callback=validate_provider,
    default=None,
    help="Inference provider to use",
)
@click.option(
    "--playback-provider",
    callback=validate_provider,
    default=None,
    help="Playback provider to use",
)
@click.option("--hands-free", is_flag=True, help="Start listening right away and keep listening after each answer")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--mock", is_flag=True, help="Run in mock mode (no devices or API calls)")
@click.option(
    "--config", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--no-metrics", is_flag=True, help="Disable metrics collection")
@click.option("--no-history", is_flag=True, help="Do not save the conversation")
def start(
    capture_provider: Optional[str],
    inference_provider: Optional[str],
    playback_provider: Optional[str],
    hands_free: bool,
    debug: bool,
    mock: bool,
    config: Optional[str],
    no_metrics: bool,
    no_history: bool,
):
    """
    Start an interactive voice conversation.

    Speak after /listen (or with --hands-free), or type a question; the
    answer is spoken aloud. Uses:
    - WhisperKit for speech capture
    - Gemini for answers
    - ElevenLabs for speech playback
    """
    _load_settings(config)
    _configure_logging(debug)

    conversation_config = ConversationConfig(
        capture_provider=capture_provider or settings.capture_provider,
        inference_provider=inference_provider or settings.inference_provider,
        playback_provider=playback_provider or settings.playback_provider,
        hands_free=hands_free or settings.turns.hands_free,
        enable_metrics=settings.metrics.enabled and not no_metrics,
        enable_history=not no_history,
        debug_mode=debug,
        mock_mode=mock,
    )

    click.echo(click.style("VoiceFlow starting...", fg="green", bold=True))
    click.echo(f"Capture Provider: {conversation_config.capture_provider}")
    click.echo(f"Inference Provider: {conversation_config.inference_provider}")
    click.echo(f"Playback Provider: {conversation_config.playback_provider}")
    if mock:
        click.echo(
            click.style("Running in MOCK mode - no devices or API calls will be used", fg="yellow")
        )
    click.echo()
    click.echo(HELP_TEXT)
    click.echo()

    try:
        manager = ConversationManager(conversation_config)
    except Exception as e:
        logger.error("Failed to create conversation", error=str(e), exc_info=True)
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)

    manager.controller.add_observer(ConsoleRenderer())

    async def run():
        await manager.start()
        try:
            await run_console(manager)
        finally:
            await manager.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\n\nShutting down...")
    except Exception as e:
        logger.error("Fatal error", error=str(e), exc_info=True)
        click.echo(click.style(f"\nError: {e}", fg="red"))
        sys.exit(1)

    if manager.metrics_collector and manager.metrics_collector.current_session:
        summary = manager.metrics_collector.get_summary()
        click.echo("\nSession Summary:")
        click.echo(f"Duration: {summary['session_duration_seconds']:.1f}s")
        click.echo(f"Exchanges: {summary['total_exchanges']}")
        if summary["total_exchanges"] > 0:
            click.echo(f"Avg Answer Latency: {summary['inference_latency_ms']['avg']:.0f}ms")

    click.echo("\nGoodbye!")


@click.command()
@click.argument("question")
@click.option("--speak", is_flag=True, help="Also speak the answer")
@click.option(
    "--inference-provider",
    callback=validate_provider,
    default=None,
    help="Inference provider to use",
)
@click.option("--mock", is_flag=True, help="Use the mock inference client")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def ask(question: str, speak: bool, inference_provider: Optional[str], mock: bool, debug: bool):
    """Ask a single typed question and print the answer."""
    setup_logging(debug=debug, log_file=False, log_level="DEBUG" if debug else "WARNING")

    conversation_config = ConversationConfig(
        inference_provider=inference_provider or settings.inference_provider,
        playback_provider=settings.playback_provider if speak else "text",
        enable_metrics=False,
        enable_history=False,
        mock_mode=mock,
    )

    async def run() -> Optional[str]:
        manager = ConversationManager(conversation_config)
        await manager.start()
        try:
            answer = await manager.ask(question)
            if answer is None:
                raise click.ClickException(
                    manager.controller.session.last_error or "Question was not accepted"
                )
            return answer
        finally:
            await manager.stop()

    try:
        answer = asyncio.run(run())
    except click.ClickException:
        raise
    except Exception as e:
        logger.error("Ask failed", error=str(e))
        raise click.ClickException(str(e))

    click.echo(answer)


@click.command()
def providers():
    """List available providers."""
    click.echo("Available Providers")
    click.echo("-" * 50)

    capture_providers = registry.list_capture_providers()
    click.echo(f"\nCapture Providers ({len(capture_providers)})")
    for provider in capture_providers:
        click.echo(f"  - {provider}")

    inference_providers = registry.list_inference_providers()
    click.echo(f"\nInference Providers ({len(inference_providers)})")
    for provider in inference_providers:
        click.echo(f"  - {provider}")

    playback_providers = registry.list_playback_providers()
    click.echo(f"\nPlayback Providers ({len(playback_providers)})")
    for provider in playback_providers:
        click.echo(f"  - {provider}")

    click.echo("\nUse --<type>-provider flag to select a specific provider.")
    click.echo("Example: voiceflow start --playback-provider text")


@click.command()
@click.argument("conversation_id", required=False)
@click.option("--path", type=click.Path(), default=None, help="Conversation storage directory")
def history(conversation_id: Optional[str], path: Optional[str]):
    """List saved conversations, or show one of them."""
    store = HistoryStore(path)

    if conversation_id:
        saved = store.load(conversation_id)
        if saved is None:
            raise click.ClickException(f"Conversation not found: {conversation_id}")
        for turn in saved:
            speaker = "You" if turn.is_user else "Assistant"
            click.echo(f"{speaker}: {turn.text}")
        return

    conversations = store.list_conversations()
    if not conversations:
        click.echo("No conversations found.")
        return

    click.echo("Saved Conversations:")
    click.echo("-" * 60)
    for conv in conversations:
        click.echo(f"ID: {conv['id']}")
        click.echo(f"Saved: {conv['saved_at']}")
        click.echo(f"Turns: {conv['turn_count']}")
        if conv["first_question"]:
            question = conv["first_question"]
            click.echo(f"First Question: {question[:100]}{'...' if len(question) > 100 else ''}")
        click.echo("-" * 60)


@click.command()
@click.option("--days", "-d", default=7, help="Number of days to include in report")
@click.option(
    "--format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.option("--path", type=click.Path(), default=None, help="Metrics storage directory")
def metrics(days: int, format: str, path: Optional[str]):
    """View conversation metrics."""
    collector = MetricsCollector(Path(path or settings.metrics.storage_path).expanduser())
    report = collector.generate_report(days=days)

    if format == "json":
        click.echo(json.dumps(report, indent=2))
        return

    click.echo("Conversation Metrics Report")
    click.echo(f"Last {days} days")
    click.echo("-" * 50)

    if report["total_sessions"] == 0:
        click.echo("No data available for the specified period.")
        return

    click.echo(f"Total Sessions: {report['total_sessions']}")
    click.echo(f"Total Exchanges: {report['total_exchanges']}")
    click.echo(f"Error Rate: {report['error_rate']:.2%}")
    click.echo(f"Interruption Rate: {report['interruption_rate']:.2%}")
    for component, count in sorted(report["errors_by_component"].items()):
        click.echo(f"  {component} errors: {count}")
    click.echo()

    latency = report["inference_latency_ms"]
    if latency["samples"] > 0:
        click.echo("Answer Latency:")
        click.echo(f"  Average: {latency['avg']:.1f}ms")
        click.echo(f"  P95: {latency['p95']:.1f}ms")
        click.echo(f"  P99: {latency['p99']:.1f}ms")
        click.echo(f"  Samples: {latency['samples']}")
    else:
        click.echo("Answer Latency: No data")


# Create CLI group
cli = click.Group(help="VoiceFlow: talk to Gemini with your voice.")
cli.add_command(start)
cli.add_command(ask)
cli.add_command(providers)
cli.add_command(history)
cli.add_command(metrics)


if __name__ == "__main__":
    cli()
