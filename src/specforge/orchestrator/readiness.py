"""Readiness predicate deciding when a conversation can start research.

The default predicate looks for a literal marker phrase in the latest
assistant turn. It is a heuristic over generated text, so it sits behind
a protocol and can be swapped for a structured signal without touching
the lifecycle controller.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ReadinessPredicate(Protocol):
    """Decides whether an assistant turn signals enough context for research."""

    def is_ready_for_research(self, latest_assistant_turn: str) -> bool:
        ...


class PhraseReadiness:
    """Case-insensitive substring match on a configured marker phrase.

    Args:
        phrase: Marker phrase, e.g. "i have enough context to begin research"
    """

    def __init__(self, phrase: str) -> None:
        if not phrase.strip():
            raise ValueError("Readiness phrase must not be empty")
        self.phrase = phrase.strip().lower()

    def is_ready_for_research(self, latest_assistant_turn: str) -> bool:
        return self.phrase in latest_assistant_turn.lower()
