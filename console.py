"""Terminal front-end for the chat widget.

Talks to a running proxy the same way the browser widget does. Messages are
sent as background tasks, so a new line can be typed while earlier ones are
still waiting for a reply.
"""

import argparse
import asyncio
import functools
from pathlib import Path
from typing import Optional, Set

from rich.console import Console

from api_client import WidgetApiClient
from audio_capture import AudioCaptureAdapter
from logger import logger
from orchestrator import MessageOrchestrator, VoiceInput
from session import FileStorage, SessionIdentityProvider
from suggestions import SuggestionSet
from view import Message

COMMANDS = {
    "/help": "Show available commands",
    "/mic": "Start or stop voice recording",
    "/1 … /9": "Send the numbered suggestion",
    "/session": "Show the session id",
    "/exit": "Quit",
}

DEFAULT_STORAGE = Path.home() / ".chatwidget" / "storage.json"


class ConsoleView:
    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self.latest_suggestions: Optional[SuggestionSet] = None
        self._typing = False

    def add_message(self, message: Message) -> None:
        if message.is_user:
            self.console.print(f"[bold cyan]you:[/] {message.text}", highlight=False)
        else:
            self.console.print(f"[bold green]bot:[/] {message.text}", highlight=False)

    def show_typing(self) -> None:
        if not self._typing:
            self._typing = True
            self.console.print("[dim]bot is typing…[/]")

    def hide_typing(self) -> None:
        self._typing = False

    def show_slow_notice(self, request_id: int) -> None:
        self.console.print("[dim italic]Still working on it…[/]")

    def remove_slow_notice(self, request_id: int) -> None:
        # printed lines stay; nothing to take back in a terminal
        pass

    def render_suggestions(self, suggestions: SuggestionSet) -> None:
        self.latest_suggestions = suggestions
        for number, prompt in enumerate(suggestions.prompts, start=1):
            self.console.print(f"  [magenta]/{number}[/] {prompt}", highlight=False)

    def set_recording(self, recording: bool) -> None:
        if recording:
            self.console.print("[red]● recording…[/] type /mic again to stop")


def _finish_task(tasks: Set[asyncio.Task], task: asyncio.Task) -> None:
    tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Background task failed", error=str(error), exc_info=error)


async def run_console(base_url: str, storage_path: Path, voice: bool) -> None:
    view = ConsoleView()
    session = SessionIdentityProvider(FileStorage(storage_path))
    tasks: Set[asyncio.Task] = set()

    def spawn(coro) -> None:
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(functools.partial(_finish_task, tasks))

    async with WidgetApiClient(base_url) as api:
        orchestrator = MessageOrchestrator(api, view, session)
        voice_input = None
        if voice:
            from sounddevice_backend import SoundDeviceBackend

            voice_input = VoiceInput(AudioCaptureAdapter(SoundDeviceBackend()), api, orchestrator)

        view.console.print("[bold]Chat widget[/], type /help for commands")
        while True:
            line = (await asyncio.to_thread(view.console.input, "> ")).strip()
            if not line:
                continue
            if line == "/exit":
                break
            if line == "/help":
                for name, description in COMMANDS.items():
                    view.console.print(f"  [bold]{name}[/]  {description}")
            elif line == "/session":
                view.console.print(session.get_session_id())
            elif line == "/mic":
                if voice_input is None:
                    view.console.print("[yellow]Voice input is off; start with --voice[/]")
                else:
                    spawn(voice_input.toggle())
            elif line[1:].isdigit() and line.startswith("/"):
                chips = view.latest_suggestions
                if chips is None or chips.used:
                    view.console.print("[yellow]No suggestions to pick from[/]")
                else:
                    spawn(orchestrator.choose_suggestion(chips, int(line[1:]) - 1))
            else:
                spawn(orchestrator.send(line))

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("Console session closed", session_id=session.get_session_id())


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Terminal client for the chat widget proxy")
    parser.add_argument("--url", default="http://localhost:8000", help="Base URL of the proxy")
    parser.add_argument("--storage", type=Path, default=DEFAULT_STORAGE, help="Where the session id is kept")
    parser.add_argument("--voice", action="store_true", help="Enable microphone input (/mic)")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(run_console(args.url, args.storage, args.voice))


if __name__ == "__main__":
    main()
