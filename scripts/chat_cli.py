#!/usr/bin/env python3
"""Interactive terminal chat that drives the sandbox agent in-process."""

import asyncio
import signal

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from sandbox_agent.errors import SandboxAgentError
from sandbox_agent.graphs.conversation import AgentLoop
from sandbox_agent.models.events import StreamEvent, ToolCallData
from sandbox_agent.utils.logging import LogConfig, setup_logging

STATUS_STYLES = {
    "running": ("⚙️", "yellow"),
    "completed": ("✅", "green"),
    "error": ("❌", "red"),
    "pending": ("⏳", "dim"),
}


class ChatCLI:
    """Interactive chat interface for the sandbox agent."""

    def __init__(self):
        """Initialize chat CLI."""
        self.console = Console()
        self.agent_loop = AgentLoop()
        self._thinking = False

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🖥️  Sandbox Agent - Interactive Chat[/bold blue]\n"
                "Describe a task and the agent will carry it out in a remote sandbox.\n"
                "Press Ctrl-C during a turn to stop it.\n"
                "Commands: /help, /reset, /sanitize, /quit",
                border_style="blue",
            )
        )

        try:
            session_id = await self.agent_loop.sessions.ensure_session()
        except SandboxAgentError as e:
            self.console.print(f"[red]❌ Cannot create a sandbox: {e}[/red]")
            return

        self.console.print(f"[green]✅ Connected to sandbox {session_id}[/green]\n")

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/reset":
                    session_id = await self.agent_loop.reset()
                    self.console.print(f"[yellow]🔄 History cleared, new sandbox {session_id}[/yellow]")
                    continue
                elif command == "/sanitize":
                    await self.agent_loop.sessions.resume_session()
                    removed = self.agent_loop.sanitize_history()
                    self.console.print(f"[yellow]🧹 History sanitized, {removed} messages removed[/yellow]")
                    continue
                elif command == "":
                    continue

                await self._run_turn(user_input)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            await self.agent_loop.sessions.close_session()

    async def _run_turn(self, message: str) -> None:
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self.agent_loop.stop)
        try:
            await self.agent_loop.process_message(message, self._display_event)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            self._end_thinking()

    async def _display_event(self, event: StreamEvent) -> None:
        """Render one stream event."""
        if event.type == "thinking":
            if not self._thinking:
                self.console.print("[dim]💭 [/dim]", end="")
                self._thinking = True
            self.console.print(event.data.content, style="dim", end="", markup=False, highlight=False)
            return

        self._end_thinking()

        if event.type == "tool_call":
            self._display_tool_call(event.data)
        elif event.type == "message":
            self.console.print(
                Panel(
                    Markdown(event.data.content),
                    title="[bold green]🤖 Agent[/bold green]",
                    border_style="green",
                    padding=(1, 2),
                )
            )
        elif event.type == "error":
            self.console.print(f"[red]❌ {escape(event.data.message)}[/red]")

    def _display_tool_call(self, data: ToolCallData) -> None:
        icon, style = STATUS_STYLES.get(data.status, ("•", "white"))
        tool_input = escape(str(data.input))
        self.console.print(f"[{style}]{icon} {data.type} {data.status}[/{style}] [dim]{tool_input}[/dim]")
        if data.status == "error" and data.error:
            self.console.print(f"   [red]{escape(data.error)}[/red]")
        elif data.status == "completed" and data.output is not None:
            self.console.print(f"   {str(data.output)[:500]}", style="dim", markup=False, highlight=False)

    def _end_thinking(self) -> None:
        if self._thinking:
            self.console.print()
            self._thinking = False

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /reset - Clear history and start over in a fresh sandbox
• /sanitize - Repair history after an interrupted turn
• /quit or /exit - Exit the chat (the sandbox is shut down)

[bold]Example Tasks:[/bold]
1. "List the files in /"
2. "Write a Python script that prints the first 20 primes and run it"
3. "Clone a small git repo and count its lines of code"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    setup_logging(LogConfig(level="WARNING"))

    chat = ChatCLI()
    asyncio.run(chat.start())


if __name__ == "__main__":
    main()
