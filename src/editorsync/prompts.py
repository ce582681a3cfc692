from __future__ import annotations

import getpass
import sys
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence, TextIO


@dataclass(frozen=True)
class Choice:
    label: str
    description: str = ""


class UserPrompt(Protocol):
    def choose(self, title: str, choices: Sequence[Choice]) -> Choice | None:
        """Return the picked choice, or None when the user dismisses the prompt."""
        ...

    def secret(self, prompt: str, validate: Callable[[str], str | None]) -> str | None:
        ...

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class TerminalPrompt:
    """
    Plain stdin/stdout prompts.

    `preset` answers `choose` non-interactively: the first choice whose label starts
    with any of the preset labels is picked without asking (used by --pull/--push/--yes).
    """

    def __init__(
        self,
        *,
        preset: Sequence[str] = (),
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        read_secret: Callable[[str], str] | None = None,
    ) -> None:
        self._preset = tuple(preset)
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self._read_secret = read_secret or getpass.getpass

    def _readline(self) -> str | None:
        line = self._stdin.readline()
        if not line:
            return None
        return line.strip()

    def choose(self, title: str, choices: Sequence[Choice]) -> Choice | None:
        for choice in choices:
            if any(choice.label.startswith(p) for p in self._preset):
                return choice

        print(title, file=self._stdout)
        for i, choice in enumerate(choices, start=1):
            line = f"  {i}) {choice.label}"
            if choice.description:
                line += f" - {choice.description}"
            print(line, file=self._stdout)
        self._stdout.write("Select an option (empty to cancel): ")
        self._stdout.flush()

        answer = self._readline()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return choices[int(answer) - 1]
        for choice in choices:
            if choice.label.lower() == answer.lower():
                return choice
        return None

    def secret(self, prompt: str, validate: Callable[[str], str | None]) -> str | None:
        try:
            value = self._read_secret(f"{prompt}: ")
        except (EOFError, KeyboardInterrupt):
            return None
        value = value.strip()
        if not value:
            return None
        problem = validate(value)
        if problem:
            self.error(problem)
            return None
        return value

    def info(self, message: str) -> None:
        print(message, file=self._stdout)

    def error(self, message: str) -> None:
        print(f"error: {message}", file=self._stderr)
