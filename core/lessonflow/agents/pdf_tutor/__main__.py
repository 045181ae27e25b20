"""
CLI entry point for the PDF Tutor agent.

The ``chat`` command is a small presentation layer: it answers interrupts
(PDF path, plan approval, quiz answers) and prints frontend actions.
"""

import asyncio
import json
import sys
import uuid

import click

from lessonflow.graph.executor import ExecutionStatus, RunOutcome
from lessonflow.observability import configure_logging

from .agent import GRAPHS, TutorAgent
from .config import metadata
from .state import AgentPhase


def setup_logging(verbose=False, debug=False):
    """Configure logging for execution visibility."""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    configure_logging(level=level)


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """PDF Tutor - Turn a PDF into an interactive lesson."""
    pass


@cli.command()
@click.option("--graph", type=click.Choice(GRAPHS), default="chat", show_default=True)
@click.option("--thread", "thread_id", default=None, help="Thread id to continue")
@click.option("--mock", is_flag=True, help="Use canned model replies")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
def chat(graph, thread_id, mock, verbose, debug):
    """Interactive tutoring session."""
    setup_logging(verbose=verbose, debug=debug)
    asyncio.run(_interactive_shell(graph, thread_id or f"thread-{uuid.uuid4().hex[:8]}", mock))


@cli.command()
@click.argument("thread_id")
@click.option("--graph", type=click.Choice(GRAPHS), default="chat", show_default=True)
@click.option("--json", "output_json", is_flag=True)
def history(thread_id, graph, output_json):
    """Print the checkpoint chain of a thread."""

    async def _history():
        agent = TutorAgent(graph=graph)
        try:
            return await agent.history(thread_id)
        finally:
            await agent.close()

    checkpoints = asyncio.run(_history())
    if output_json:
        click.echo(json.dumps([cp.model_dump(mode="json") for cp in checkpoints], indent=2))
        return
    if not checkpoints:
        click.echo(f"No checkpoints for thread '{thread_id}'")
        return
    for cp in checkpoints:
        line = f"{cp.seq:>4}  {cp.status:<10} {cp.source_node or '-'} -> {cp.next_node or 'END'}"
        if cp.pending_interrupt:
            line += f"  [waiting: {cp.pending_interrupt.kind}]"
        if cp.error:
            line += f"  [{cp.error_type}: {cp.error}]"
        click.echo(line)


@cli.command()
@click.option("--graph", type=click.Choice(GRAPHS), default="chat", show_default=True)
def threads(graph):
    """List threads with saved checkpoints."""

    async def _threads():
        agent = TutorAgent(graph=graph)
        try:
            return await agent.threads()
        finally:
            await agent.close()

    for thread_id in asyncio.run(_threads()):
        click.echo(thread_id)


@cli.command()
@click.option("--graph", type=click.Choice(GRAPHS), default="chat", show_default=True)
@click.option("--json", "output_json", is_flag=True)
def info(graph, output_json):
    """Show agent information."""
    info_data = TutorAgent(graph=graph).info()
    if output_json:
        click.echo(json.dumps(info_data, indent=2))
    else:
        click.echo(f"Agent: {info_data['name']}")
        click.echo(f"Version: {info_data['version']}")
        click.echo(f"Description: {info_data['description']}")
        click.echo(f"\nGraph: {info_data['graph']['id']}")
        click.echo(f"Nodes: {', '.join(info_data['graph']['nodes'])}")
        click.echo(f"Entry: {info_data['graph']['entry_node']}")
        click.echo(f"Model: {info_data['model']}")
        click.echo(f"Storage: {info_data['checkpoint_backend']} @ {info_data['storage_path']}")


@cli.command()
def validate():
    """Validate agent structure."""
    validation = TutorAgent().validate()
    if validation["valid"]:
        click.echo("Agent is valid")
        for warning in validation["warnings"]:
            click.echo(f"  WARNING: {warning}")
    else:
        click.echo("Agent has errors:")
        for error in validation["errors"]:
            click.echo(f"  ERROR: {error}")
    sys.exit(0 if validation["valid"] else 1)


def _render(outcome: RunOutcome) -> None:
    """Print what the driver needs to show for a run outcome."""
    state = outcome.state

    if outcome.is_failed:
        click.echo(f"\n[Run failed: {outcome.error_type}: {outcome.error}]")
        click.echo("Press enter to retry the failed step.\n")
        return

    if outcome.is_suspended:
        interrupt = outcome.interrupt
        if interrupt.kind == "resource":
            click.echo("\nWhich PDF should we study? Enter a path:")
        elif interrupt.kind == "approval":
            click.echo("\nLearning plan:")
            for i, topic in enumerate(state.learning_plan, 1):
                click.echo(f"  {i}. {topic.topic} ({topic.difficulty})")
            click.echo("Approve this plan? (yes/no)")
        elif interrupt.kind == "question":
            payload = interrupt.value
            click.echo(f"\n[{payload['topic']}] {payload['question']}")
            for i, choice in enumerate(payload["choices"], 1):
                click.echo(f"  {i}. {choice}")
        else:
            click.echo(f"\n{interrupt.value}")
        return

    messages = list(state.messages) if state else []
    last = messages[-1] if messages else None
    if last is None or last.role != "assistant":
        return
    if last.content:
        click.echo(f"\n{last.content}")
    for call in last.tool_calls:
        click.echo(f"\n<{call.name}>")
        click.echo(json.dumps(call.input, indent=2))


async def _interactive_shell(graph: str, thread_id: str, mock: bool = False):
    """Async interactive shell."""
    click.echo(f"=== {metadata.name} ({graph}) ===")
    click.echo(f"Thread: {thread_id}  ('quit' to exit)\n")
    click.echo(metadata.intro_message)

    agent = TutorAgent(graph=graph, mock_mode=mock)
    try:
        if await agent.executor.get_status(thread_id) == ExecutionStatus.COMPLETED:
            # Continuing a finished turn: wait for the next message
            state = await agent.executor.get_state(thread_id)
            outcome = RunOutcome(ExecutionStatus.COMPLETED, thread_id, state=state)
        else:
            outcome = await agent.start(thread_id)
        while True:
            _render(outcome)
            if outcome.is_completed and outcome.state.current_phase == AgentPhase.SUMMARY:
                click.echo("\nLesson complete. Goodbye!")
                break

            try:
                user_input = await asyncio.to_thread(input, "> ")
            except (KeyboardInterrupt, EOFError):
                click.echo("\nGoodbye!")
                break
            if user_input.lower() in ["quit", "exit", "q"]:
                click.echo("Goodbye!")
                break

            if outcome.is_suspended:
                outcome = await agent.resume(thread_id, user_input.strip())
            elif outcome.is_failed or not user_input.strip():
                outcome = await agent.start(thread_id)
            else:
                outcome = await agent.send_message(thread_id, user_input)
    finally:
        await agent.close()


if __name__ == "__main__":
    cli()
