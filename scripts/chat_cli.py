#!/usr/bin/env python3
"""Interactive streaming chat CLI for the chat service."""

import asyncio
import os
import sys

import httpx
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from toolchat.client import ChatSendError, ChatSession
from toolchat.models.messages import ChatMessage


class ChatCLI:
    """Interactive chat interface that renders answers as they stream."""

    def __init__(self, base_url: str = "http://localhost:8000", access_token: str | None = None):
        """Initialize chat CLI."""
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.console = Console()
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        self.session = ChatSession(self.client, f"{self.base_url}/chat", access_token=access_token)
        self.live: Live | None = None

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Liqueno - Interactive Chat[/bold blue]\n"
                "Ask about stocks, crypto, weather, news or sports.\n"
                "Commands: /help, /clear, /send-otp, /verify <code>, /quit",
                border_style="blue",
            )
        )

        if not await self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            await self.client.aclose()
            return

        self.console.print("[green]✅ Connected to chat service[/green]\n")

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
                command = user_input.strip()

                if command.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command.lower() == "/help":
                    self._show_help()
                elif command.lower() == "/clear":
                    self.session.clear()
                    self.console.print("[yellow]🔄 Conversation cleared[/yellow]")
                elif command.lower() == "/send-otp":
                    await self._post_otp("/send-otp", None)
                elif command.lower().startswith("/verify"):
                    await self._post_otp("/verify-otp", {"code": command.partition(" ")[2].strip()})
                elif command:
                    await self._send_message(command)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            await self.client.aclose()

    async def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = await self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def _send_message(self, message: str) -> None:
        """Send a message and render the streamed reply live."""
        self.session.on_update = self._render
        with Live(self._panel(""), console=self.console, refresh_per_second=12) as live:
            self.live = live
            try:
                await self.session.send(message)
            except ChatSendError as e:
                self.console.print(f"[red]❌ {e.message}[/red]")
            finally:
                self.live = None

    def _render(self, messages: list[ChatMessage]) -> None:
        if self.live is None or not messages or messages[-1].role != "assistant":
            return
        self.live.update(self._panel(messages[-1].text))

    def _panel(self, text: str) -> Panel:
        return Panel(
            Markdown(text or "💭 Thinking..."),
            title="[bold green]🤖 Liqueno[/bold green]",
            border_style="green",
            padding=(1, 2),
        )

    async def _post_otp(self, path: str, payload: dict | None) -> None:
        headers = {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}
        try:
            response = await self.client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_success:
            self.console.print(f"[green]✅ {data.get('message')}[/green]")
        else:
            self.console.print(f"[red]❌ {data.get('error', response.text)}[/red]")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Clear the conversation
• /send-otp - Email a verification code to the signed-in user
• /verify <code> - Verify a 6-digit code
• /quit or /exit - Exit the chat

[bold]Example Questions:[/bold]
1. "What's AAPL trading at?"
2. "How much is BTC worth right now?"
3. "What's the weather in Lisbon?"
4. "Any basketball scores today?"

[bold]Tips:[/bold]
• Set CHAT_ACCESS_TOKEN to your bearer token for OTP commands
• Verification codes can also be pasted into the chat
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url, access_token=os.getenv("CHAT_ACCESS_TOKEN"))
    asyncio.run(chat.start())


if __name__ == "__main__":
    main()
