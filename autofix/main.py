"""Autofix entry point: runs one repair session for a failing UI test."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from autofix.config import load_settings
from autofix.core.conversation import ConversationResult, Outcome
from autofix.core.llm import LLMError
from autofix.core.pipeline import AutofixPipeline, RepairMode
from autofix.core.prompts import FailingTest
from autofix.tools import ToolInputError
from autofix.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


def report(result: ConversationResult) -> None:
    click.echo(f"Outcome: {result.outcome.value} after {result.iterations} iteration(s)")
    if result.outcome == Outcome.GAVE_UP:
        if result.give_up is None:
            click.echo("The model gave up without naming a file and line.")
        else:
            click.echo(json.dumps(result.give_up.to_payload(), indent=2))
            click.echo(f"Open in Xcode: {result.give_up.xcode_url}")
    elif result.final_text:
        click.echo(result.final_text)


@click.command()
@click.option(
    "--workspace",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Root of the Xcode workspace",
)
@click.option(
    "--test-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Source file of the failing test",
)
@click.option("--test-id", required=True, help="test://com.apple.xcode/{scheme}/{target}/{class}/{method}")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in RepairMode]),
    default=RepairMode.AUTOFIX.value,
    show_default=True,
    help="autofix: fix the app to satisfy the test; analyze: adjust the test",
)
@click.option(
    "--snapshot-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding simulator screenshots of the failure",
)
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--max-iterations", default=None, type=click.IntRange(min=1), help="Conversation iteration budget")
def cli(
    workspace: Path,
    test_file: Path,
    test_id: str,
    mode: str,
    snapshot_dir: Path | None,
    config_path: str | None,
    log_level: str | None,
    max_iterations: int | None,
) -> None:
    """Repair a failing iOS UI test with an LLM agent."""
    settings = load_settings(config_path, max_iterations=max_iterations)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    pipeline = AutofixPipeline(
        settings,
        workspace=workspace.resolve(),
        test_file=test_file.resolve(),
        failing_test=FailingTest(test_id),
        mode=mode,
        snapshot_dir=snapshot_dir,
    )
    try:
        result = asyncio.run(pipeline.run())
    except (LLMError, ToolInputError) as e:
        log.error("repair_session_failed", error=str(e), error_type=type(e).__name__)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    report(result)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
