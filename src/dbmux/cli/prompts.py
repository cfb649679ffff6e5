"""Rich-backed ``Prompter`` used by the interactive commands."""

from collections.abc import Callable, Sequence
from typing import TypeVar

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

T = TypeVar("T")


class RichPrompter:
    """Numbered menus and yes/no questions on a Rich console."""

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    def select(self, message: str, choices: Sequence[tuple[str, T]]) -> T:
        if not choices:
            raise ValueError("select() needs at least one choice")
        self._console.print(f"[bold]{message}[/bold]")
        for i, (label, _) in enumerate(choices, start=1):
            self._console.print(f"  [cyan]{i}[/cyan]) {label}")
        index = IntPrompt.ask(
            "Choice",
            console=self._console,
            choices=[str(i) for i in range(1, len(choices) + 1)],
            show_choices=False,
            default=1,
        )
        return choices[index - 1][1]

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, console=self._console, default=default)

    def text(
        self,
        message: str,
        validate: Callable[[str], bool] | None = None,
        error_message: str = "Invalid value",
    ) -> str:
        while True:
            value = Prompt.ask(message, console=self._console).strip()
            if value and (validate is None or validate(value)):
                return value
            self._console.print(f"[red]{error_message}[/red]")
