"""Main CLI application using Typer."""
import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..chat import ChatController, SendOptions, SendOutcome
from ..config import ChatSettings
from ..storage import Agent, Role
from ..tools import ToolDispatchRouter
from .providers import (
    ConsoleNotifier,
    get_backend,
    get_planner,
    get_realtime,
    get_sessions,
    get_store,
    get_tool_client,
    make_debug_callback,
)

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="agentstream",
    help="Streaming multi-agent chat client with local tool execution",
    no_args_is_help=True,
    add_completion=True,
)

session_app = typer.Typer(help="Inspect or reset the automation session slot")
app.add_typer(session_app, name="session")

# Console for rich output
console = Console()

AGENT_OPTION = typer.Option(
    ...,
    "--agent",
    "-a",
    envvar="AGENTSTREAM_AGENT",
    help="Agent slug",
)
AGENT_ID_OPTION = typer.Option(
    None,
    "--agent-id",
    envvar="AGENTSTREAM_AGENT_ID",
    help="Agent id (defaults to the slug)",
)
LOG_LEVEL_OPTION = typer.Option(
    "warning",
    "--log-level",
    "-l",
    help="Diagnostics shown: debug, info, warning, error",
)


@asynccontextmanager
async def _controller(
    agent_slug: str,
    agent_id: str | None,
    log_level: str,
) -> AsyncIterator[ChatController]:
    debug_callback = make_debug_callback(console, log_level)
    notifier = ConsoleNotifier(console)
    store = get_store()
    realtime = get_realtime(debug_callback)
    backend = get_backend(console)
    tool_client = get_tool_client(console)
    planner = get_planner()
    router = ToolDispatchRouter(
        tool_client,
        get_sessions(debug_callback),
        notifier=notifier,
        planner=planner,
        debug_callback=debug_callback,
    )
    controller = ChatController(
        backend,
        store,
        realtime=realtime,
        router=router,
        notifier=notifier,
        agent=Agent(id=agent_id or agent_slug, slug=agent_slug),
        user_id=os.getenv("AGENTSTREAM_USER_ID"),
        settings=ChatSettings(),
        debug_callback=debug_callback,
    )
    try:
        await store.connect()
        await realtime.connect()
        yield controller
    finally:
        await controller.close()
        await realtime.disconnect()
        await store.disconnect()
        await tool_client.close()
        if planner is not None:
            await planner.close()
        await backend.close()


async def _send_and_print(controller: ChatController, text: str, options: SendOptions) -> SendOutcome:
    with console.status("[dim]Waiting for the agent...[/dim]"):
        outcome = await controller.send(text, options)

    if outcome is SendOutcome.BACKGROUND:
        console.print("[dim]Response continues in the background...[/dim]")
        await controller.handoffs.wait_all()

    reply = next((m for m in reversed(list(controller.messages)) if m.role == Role.ASSISTANT), None)
    if reply is not None and not outcome.rejected:
        provider = f" [dim]({reply.llm_provider})[/dim]" if reply.llm_provider else ""
        console.print(f"[bold green]Agent{provider}:[/bold green] {reply.content}\n")
    return outcome


@app.command()
def chat(
    agent: str = AGENT_OPTION,
    agent_id: str | None = AGENT_ID_OPTION,
    conversation: str | None = typer.Option(
        None,
        "--conversation",
        "-c",
        help="Resume an existing conversation",
    ),
    log_level: str = LOG_LEVEL_OPTION,
):
    """Interactive chat with an agent."""
    async def _chat():
        async with _controller(agent, agent_id, log_level) as controller:
            if conversation:
                await controller.load_conversation(conversation)
                console.print(f"[dim]Loaded {len(controller.messages)} messages[/dim]")

            console.print(f"[bold cyan]Chatting with {agent}[/bold cyan]")
            console.print("[dim]Type 'exit', 'quit', or 'q' to leave[/dim]\n")

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                if not user_input.strip():
                    continue
                if user_input.strip().lower() in ('exit', 'quit', 'q'):
                    console.print("[dim]Goodbye![/dim]")
                    break

                await _send_and_print(controller, user_input, SendOptions(conversation_id=conversation))

    asyncio.run(_chat())


@app.command()
def send(
    message: str = typer.Argument(..., help="Message text"),
    agent: str = AGENT_OPTION,
    agent_id: str | None = AGENT_ID_OPTION,
    conversation: str | None = typer.Option(None, "--conversation", "-c", help="Conversation id"),
    forced_tool: str | None = typer.Option(None, "--tool", "-t", help="Force a backend tool for this turn"),
    log_level: str = LOG_LEVEL_OPTION,
):
    """Send one message and print the reply."""
    async def _send():
        async with _controller(agent, agent_id, log_level) as controller:
            outcome = await _send_and_print(
                controller,
                message,
                SendOptions(conversation_id=conversation, forced_tool=forced_tool),
            )
            if outcome in (SendOutcome.FAILED, SendOutcome.REJECTED_MISMATCH, SendOutcome.REJECTED_NO_AGENT):
                raise typer.Exit(code=1)

    asyncio.run(_send())


@app.command()
def history(
    conversation: str = typer.Argument(..., help="Conversation id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Show the last N messages"),
):
    """Print the messages of a conversation."""
    async def _history():
        store = get_store()
        try:
            await store.connect()
            found = await store.get_conversation(conversation)
            if found is None:
                console.print(f"[red]Conversation {conversation} not found[/red]")
                raise typer.Exit(code=1)

            messages = await store.list_messages(conversation)
            console.print(Panel(f"{found.title}\n[dim]{len(messages)} messages[/dim]", title="Conversation"))

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Role", style="yellow", width=10)
            table.add_column("Provider", style="dim", width=10)
            table.add_column("Content")
            for m in messages[-limit:]:
                content = m.content if len(m.content) <= 300 else m.content[:300] + "..."
                table.add_row(m.role.value, m.llm_provider or "", content)
            console.print(table)
        finally:
            await store.disconnect()

    asyncio.run(_history())


@session_app.command("show")
def session_show():
    """Show the current automation session id."""
    sessions = get_sessions()
    if sessions.session_id:
        console.print(f"[green]Active session:[/green] {sessions.session_id}")
    else:
        console.print("[dim]No automation session[/dim]")


@session_app.command("clear")
def session_clear(
    stop: bool = typer.Option(False, "--stop", help="Also stop the remote browser session"),
):
    """Forget the automation session (optionally stopping the browser)."""
    async def _clear():
        sessions = get_sessions()
        if stop:
            async with get_tool_client(console) as client:
                await sessions.end_session(client)
        else:
            sessions.clear()
        console.print("[green]Automation session cleared[/green]")

    asyncio.run(_clear())


@app.command(name="tool-status")
def tool_status():
    """Check that the local tool server is reachable."""
    async def _status():
        async with get_tool_client(console) as client:
            if not client.is_configured():
                raise typer.Exit(code=1)
            result = await client.test_connection()
            healthy = await client.check_health()

        table = Table(show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_row("URL", str(result.get("url_used")))
        table.add_row("Connected", "[green]yes[/green]" if result.get("connected") else "[red]no[/red]")
        table.add_row("Healthy", "[green]yes[/green]" if healthy else "[red]no[/red]")
        if result.get("version"):
            table.add_row("Version", str(result["version"]))
        if result.get("error"):
            table.add_row("Error", f"[red]{result['error']}[/red]")
        console.print(table)
        if not healthy:
            raise typer.Exit(code=1)

    asyncio.run(_status())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
