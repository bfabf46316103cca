"""Modal screens for the vibe-orchestrator TUI."""

from typing import Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Vertical, ScrollableContainer
from textual.screen import ModalScreen
from textual.widgets import Button, Static

from vibe_orchestrator.core.state_machine import BranchEntry
from vibe_orchestrator.formatters import format_activity, format_pull_request, format_state, format_tokens
from vibe_orchestrator.models.task import Task


class ConfirmScreen(ModalScreen[bool]):
    """Modal confirmation dialog."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 70%;
        height: auto;
        border: thick $background 80%;
        background: $surface;
        padding: 1 2;
    }

    #confirm-message {
        width: 100%;
        height: auto;
        padding: 1 0;
    }

    #button-container {
        width: 100%;
        height: auto;
        align: center middle;
        padding: 1 0;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("y", "answer(True)", "Yes", show=False),
        Binding("n", "answer(False)", "No", show=False),
        Binding("escape", "answer(False)", "Cancel"),
    ]

    def __init__(self, message: str):
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Static(self.message, id="confirm-message")
            with Container(id="button-container"):
                yield Button("Yes", variant="error", id="yes")
                yield Button("No", variant="primary", id="no")

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button press."""
        self.dismiss(event.button.id == "yes")


class InfoScreen(ModalScreen):
    """Modal text display (legend, details)."""

    DEFAULT_CSS = """
    InfoScreen {
        align: center middle;
    }

    #info-dialog {
        width: 80%;
        height: auto;
        max-height: 90%;
        border: thick $background 80%;
        background: $surface;
        padding: 1 2;
    }

    #info-scroll {
        height: auto;
        max-height: 30;
    }

    #info-content {
        width: 100%;
        height: auto;
        padding: 1 0;
    }

    #info-button-container {
        width: 100%;
        height: auto;
        align: center middle;
        padding: 1 0;
    }
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("enter", "close", "Close", show=False),
    ]

    def __init__(self, info: str, markup: bool = False):
        super().__init__()
        self.info = info
        self.markup = markup

    def compose(self) -> ComposeResult:
        with Vertical(id="info-dialog"):
            with ScrollableContainer(id="info-scroll"):
                yield Static(self.info, id="info-content", markup=self.markup)
            with Container(id="info-button-container"):
                yield Button("Close", variant="primary", id="close")

    def action_close(self) -> None:
        self.dismiss()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button press."""
        self.dismiss()


def describe_entry(entry: BranchEntry, task: Optional[Task] = None) -> str:
    """Plain-text details of a branch entry for InfoScreen."""
    lines = [
        f"Branch:    {entry.branch}",
        f"State:     {format_state(entry.state)}",
    ]
    if entry.worktree is not None:
        lines.append(f"Worktree:  {entry.worktree.path}{'' if entry.worktree.exists else ' (missing on disk)'}")
        if entry.worktree.commit_sha:
            lines.append(f"HEAD:      {entry.worktree.commit_sha[:12]}")
    if entry.session is not None:
        session = entry.session
        lines.append(f"Session:   {session.name}{' (attached elsewhere)' if session.attached else ''}")
        lines.append(f"Agent:     {format_activity(session.activity) or 'unknown'}")
        if session.input_tokens is not None or session.output_tokens is not None:
            lines.append(
                f"Tokens:    {format_tokens(session.input_tokens) or '-'} in / "
                f"{format_tokens(session.output_tokens) or '-'} out"
            )
    if entry.pull_request is not None:
        pr = entry.pull_request
        lines.append(f"PR:        {format_pull_request(pr)} {pr.title}".rstrip())
        if pr.url:
            lines.append(f"           {pr.url}")
    if entry.stale:
        lines.append("")
        lines.append("Data for this branch is stale: the last poll failed.")
    if task is not None:
        lines.append("")
        lines.append(task.context)
    return "\n".join(lines)
