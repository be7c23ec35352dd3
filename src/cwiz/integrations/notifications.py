"""User-facing toast notifications.

The wizard reports validation failures, explicit save results, and the
outcome of contract generation through a ``ToastSink``. Background autosave
never toasts.
"""

from __future__ import annotations

from typing import Protocol

from rich.console import Console

from cwiz.models import Toast, ToastVariant


class ToastSink(Protocol):
    def __call__(self, toast: Toast) -> None: ...


class ConsoleToastSink:
    """Prints toasts to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def __call__(self, toast: Toast) -> None:
        color = "red" if toast.is_destructive else "green"
        line = f"[{color}]{toast.title}[/{color}]"
        if toast.description:
            line += f" {toast.description}"
        self.console.print(line)


class MemoryToastSink:
    """Collects toasts in order."""

    def __init__(self) -> None:
        self.toasts: list[Toast] = []

    def __call__(self, toast: Toast) -> None:
        self.toasts.append(toast)

    @property
    def titles(self) -> list[str]:
        return [t.title for t in self.toasts]

    @property
    def destructive(self) -> list[Toast]:
        return [t for t in self.toasts if t.is_destructive]

    def clear(self) -> None:
        self.toasts.clear()


# ---------------------------------------------------------------------------
# Convenience builders for common toasts
# ---------------------------------------------------------------------------

def info(title: str, description: str = "") -> Toast:
    return Toast(title=title, description=description)


def destructive(title: str, description: str = "") -> Toast:
    return Toast(title=title, description=description, variant=ToastVariant.DESTRUCTIVE)
