from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class AnswerRegister:
    """Last-writer-wins store for the answer typed into the page.

    Several producers (mutation scans, input events, polling) offer values;
    an empty or unchanged value never overwrites what was captured.
    """

    last_value: str = ""
    current: str = ""

    def offer(self, value: str | None) -> bool:
        if not value or value == self.last_value:
            return False
        self.last_value = value
        self.current = value
        return True

    def start_problem(self) -> None:
        self.current = ""

    def resolve(self, default: str) -> str:
        return self.current or self.last_value or default
