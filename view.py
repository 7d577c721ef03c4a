"""Render surface the orchestrator drives.

``TranscriptView`` keeps everything in memory; the console front-end in
``console.py`` draws the same calls with rich.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Protocol, Set

from suggestions import SuggestionSet


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True)
class Message:
    text: str
    sender: Sender
    order: int

    @property
    def is_user(self) -> bool:
        return self.sender is Sender.USER


class ChatView(Protocol):
    def add_message(self, message: Message) -> None: ...

    def show_typing(self) -> None: ...

    def hide_typing(self) -> None: ...

    def show_slow_notice(self, request_id: int) -> None: ...

    def remove_slow_notice(self, request_id: int) -> None: ...

    def render_suggestions(self, suggestions: SuggestionSet) -> None: ...

    def set_recording(self, recording: bool) -> None: ...


class TranscriptView:
    def __init__(self) -> None:
        self.messages: List[Message] = []
        self.suggestion_sets: List[SuggestionSet] = []
        self.typing_visible = False
        self.slow_notices: Set[int] = set()
        self.slow_notice_count = 0
        self.recording = False

    def add_message(self, message: Message) -> None:
        self.messages.append(message)

    def show_typing(self) -> None:
        self.typing_visible = True

    def hide_typing(self) -> None:
        self.typing_visible = False

    def show_slow_notice(self, request_id: int) -> None:
        self.slow_notices.add(request_id)
        self.slow_notice_count += 1

    def remove_slow_notice(self, request_id: int) -> None:
        self.slow_notices.discard(request_id)

    @property
    def slow_notice_visible(self) -> bool:
        return bool(self.slow_notices)

    def render_suggestions(self, suggestions: SuggestionSet) -> None:
        self.suggestion_sets.append(suggestions)

    def set_recording(self, recording: bool) -> None:
        self.recording = recording

    @property
    def bot_texts(self) -> List[str]:
        return [m.text for m in self.messages if not m.is_user]
