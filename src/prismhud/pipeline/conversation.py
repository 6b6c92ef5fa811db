"""Bounded conversation transcript."""

from __future__ import annotations

from typing import Any

from prismhud.analysis.models import ConversationTurn, Role


class Conversation:
    """FIFO transcript of at most ``limit`` turns, appended in USER/MODEL pairs."""

    def __init__(self, limit: int = 2) -> None:
        if limit < 2 or limit % 2:
            raise ValueError("limit must be an even number >= 2")
        self.limit = limit
        self._turns: list[ConversationTurn] = []

    def append(self, user_text: str, model_text: str) -> None:
        """Record one exchange, evicting the oldest turns beyond the limit."""
        self._turns.extend(
            (
                ConversationTurn(role=Role.USER, text=user_text),
                ConversationTurn(role=Role.MODEL, text=model_text),
            )
        )
        self._turns = self._turns[-self.limit :]

    def snapshot(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def to_contents(self) -> list[dict[str, Any]]:
        return [turn.to_content() for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)
