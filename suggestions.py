"""Follow-up prompt chips shown under a bot reply."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

EXPLORATORY = [
    "What services do you offer?",
    "How does it work?",
    "Who is this for?",
]
ACTION_ORIENTED = [
    "Can you show me an example?",
    "What would the next steps be?",
    "How long does it take to get started?",
]
CONVERSION_ORIENTED = [
    "How much does it cost?",
    "Can I book a call?",
    "How do I get in touch?",
]


def contextual_suggestions(exchange_count: int) -> List[str]:
    if exchange_count <= 1:
        return list(EXPLORATORY)
    if exchange_count <= 3:
        return list(ACTION_ORIENTED)
    return list(CONVERSION_ORIENTED)


def choose_suggestions(payload_suggestions: Optional[Any], exchange_count: int) -> List[str]:
    """Prefer chips from the AI payload; fall back to the contextual table."""
    if isinstance(payload_suggestions, list):
        chips = [s.strip() for s in payload_suggestions if isinstance(s, str) and s.strip()]
        if chips:
            return chips
    return contextual_suggestions(exchange_count)


@dataclass
class SuggestionSet:
    prompts: List[str]
    message_index: int
    used: bool = field(default=False)

    def take(self, index: int) -> Optional[str]:
        """Mark the set used and return the chosen prompt; None once used."""
        if self.used or not 0 <= index < len(self.prompts):
            return None
        self.used = True
        return self.prompts[index]
