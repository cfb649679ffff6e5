"""Interactive prompt interface used by the orchestrators.

The core never reads from the terminal directly; it asks a ``Prompter``.
The CLI supplies a Rich-backed implementation, tests supply a mock.
"""

from collections.abc import Callable, Sequence
from typing import Protocol, TypeVar

T = TypeVar("T")


class Prompter(Protocol):
    def select(self, message: str, choices: Sequence[tuple[str, T]]) -> T:
        """Ask the operator to pick one of ``(label, value)`` choices."""
        ...

    def confirm(self, message: str, default: bool = False) -> bool:
        ...

    def text(
        self,
        message: str,
        validate: Callable[[str], bool] | None = None,
        error_message: str = "Invalid value",
    ) -> str:
        """Ask for free text, re-asking until ``validate`` accepts it."""
        ...
