#!/usr/bin/env python3
"""Interactive terminal chat."""

import asyncio

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from chatloop.config import Settings
from chatloop.exceptions import ChatLoopError, ModelUnavailable, ToolLoopExceeded
from chatloop.models.messages import Message
from chatloop.services.conversation import ConversationService, create_conversation_service
from chatloop.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_COMMANDS = {"/bye", "/quit", "/exit"}


class ChatCLI:
    """Interactive chat interface running turns in-process."""

    def __init__(self, service: ConversationService, console: Console | None = None):
        """Initialize chat CLI."""
        self.service = service
        self.console = console or Console()
        self.session_id = service.new_session()

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]chatloop[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /clear, /history, /bye",
                border_style="blue",
            )
        )

        try:
            while True:
                # Read on the loop thread: a worker thread blocked on stdin outlives Ctrl-C
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]", console=self.console)
                if not await self.handle_input(user_input):
                    break
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")

    async def handle_input(self, user_input: str) -> bool:
        """Handle one line of input. Returns False when the session should end."""
        command = user_input.strip().lower()

        if command in EXIT_COMMANDS:
            return False
        if command == "/help":
            self._show_help()
        elif command == "/clear":
            self.service.reset(self.session_id)
            self.session_id = self.service.new_session()
            self.console.print("[yellow]Session cleared[/yellow]")
        elif command == "/history":
            self._show_history()
        elif command:
            await self._send_message(user_input)

        return True

    async def _send_message(self, message: str) -> None:
        """Run one turn and display the answer or the failure."""
        try:
            with self.console.status("[dim]Thinking...[/dim]"):
                result = await self.service.process_message(message, self.session_id)
        except ValueError as e:
            self.console.print(f"[yellow]{escape(str(e))}[/yellow]")
            return
        except ModelUnavailable as e:
            self.console.print(f"[red]The model is unavailable right now: {escape(str(e))}[/red]")
            return
        except ToolLoopExceeded as e:
            self.console.print(f"[red]The assistant kept calling tools without answering: {escape(str(e))}[/red]")
            return
        except ChatLoopError as e:
            logger.error(f"Turn failed: {e}", exc_info=True)
            self.console.print(f"[red]Something went wrong with this message: {escape(str(e))}[/red]")
            return

        self._display_response(result.answer, result.rounds)

    def _display_response(self, answer: str, rounds: int) -> None:
        """Display AI response with nice formatting."""
        subtitle = f"[dim]{rounds} tool round{'s' if rounds != 1 else ''}[/dim]" if rounds else None
        self.console.print(
            Panel(
                Markdown(answer),
                title="[bold green]AI[/bold green]",
                subtitle=subtitle,
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_history(self) -> None:
        history = self.service.history(self.session_id)
        if not history:
            self.console.print("[dim]No messages yet.[/dim]")
            return

        for message in history:
            self.console.print(_format_history_line(message))

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Forget this conversation and start a new session
• /history - Show the messages exchanged so far
• /bye, /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• Ask about recent events and the assistant will search the web first
• The whole conversation is sent with every message
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def _format_history_line(message: Message) -> str:
    if message.role == "user":
        return f"[cyan]You:[/cyan] {escape(message.content)}"
    if message.role == "tool":
        colour = "red" if message.is_error else "magenta"
        preview = message.content.splitlines()[0][:80]
        return f"[{colour}]  tool {message.name}:[/{colour}] {escape(preview)}"
    if message.tool_calls:
        calls = ", ".join(f"{call.name}({call.arguments_dict()})" for call in message.tool_calls)
        return f"[green]AI[/green] [dim]requested {escape(calls)}[/dim]"
    return f"[green]AI:[/green] {escape(message.content)}"


def main() -> None:
    """Main entry point for the chat CLI."""
    console = Console()
    try:
        settings = Settings.from_env(default_log_level="WARNING")
        setup_logging(settings.log)
        service = create_conversation_service(settings)
    except ValueError as e:
        console.print(f"[red]Cannot start: {escape(str(e))}[/red]")
        raise SystemExit(1) from e

    try:
        asyncio.run(ChatCLI(service, console).start())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
