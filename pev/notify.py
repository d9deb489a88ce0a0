"""Completion notifier: one out-of-band signal per finished session."""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import TYPE_CHECKING, Protocol

from rich.console import Console

if TYPE_CHECKING:
    from pev.generation.orchestrator import DualPartSession

logger = logging.getLogger(__name__)


class NotificationBackend(Protocol):
    """Platform capability. Implementations must never raise."""

    @property
    def supported(self) -> bool: ...

    def send(self, title: str, body: str) -> None: ...

    def set_title(self, title: str) -> None: ...


class NullNotificationBackend:
    """Headless no-op; records what would have been shown."""

    supported = False

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.title: str | None = None

    def send(self, title: str, body: str) -> None:
        self.sent.append((title, body))

    def set_title(self, title: str) -> None:
        self.title = title


class ConsoleNotificationBackend:
    """Prints to the terminal and sets the window title via an OSC sequence."""

    def __init__(self, console: Console | None = None):
        self._console = console or Console(stderr=True)

    @property
    def supported(self) -> bool:
        return self._console.is_terminal

    def send(self, title: str, body: str) -> None:
        try:
            self._console.print(f"[bold]{title}[/bold] {body}")
        except Exception as e:
            logger.debug("Console notification failed: %s", e)

    def set_title(self, title: str) -> None:
        if not self.supported:
            return
        try:
            self._console.set_window_title(title)
        except Exception as e:
            logger.debug("Window title update failed: %s", e)


class DesktopNotificationBackend(ConsoleNotificationBackend):
    """Desktop notification through ``notify-send`` when it is installed."""

    def __init__(self, console: Console | None = None):
        super().__init__(console)
        self._binary = shutil.which("notify-send")

    @property
    def supported(self) -> bool:
        return self._binary is not None

    def send(self, title: str, body: str) -> None:
        if not self._binary:
            super().send(title, body)
            return
        try:
            subprocess.run([self._binary, title, body], check=False, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Desktop notification failed: %s", e)


def describe(session: DualPartSession) -> tuple[str, str]:
    """Title and body text for a terminal session."""
    from pev.generation.orchestrator import SessionOutcome

    if session.outcome == SessionOutcome.SUCCEEDED:
        if session.stitch_result is not None:
            return "Video ready", f"Merged video ready ({session.stitch_result.strategy})."
        return "Video ready", "Your video has finished generating."
    if session.outcome == SessionOutcome.DEGRADED:
        if session.stitch_error:
            return "Video parts ready", "Merging failed; both parts are available separately."
        return "Video partially ready", "One part failed; the other part is available."
    return "Video generation failed", "Retry to start a new generation."


class CompletionNotifier:
    """Fires once per session when it reaches a terminal state."""

    def __init__(self, backend: NotificationBackend | None = None):
        self.backend = backend or NullNotificationBackend()
        self._fired: set[str] = set()

    def notify(self, session: DualPartSession) -> bool:
        """Signal completion; returns False when nothing was sent."""
        if not session.is_terminal or session.session_id in self._fired:
            return False
        self._fired.add(session.session_id)
        title, body = describe(session)
        try:
            self.backend.send(title, body)
            self.backend.set_title(title)
        except Exception as e:
            logger.warning("Completion notification failed: %s", e)
        logger.info("Session %s finished: %s", session.session_id, title)
        return True
