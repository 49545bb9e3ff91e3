from __future__ import annotations
from typing import List, Optional

from aioconsole import ainput
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from guide.config import DEFAULT_INITIAL_ENTRY
from guide.models import Message
from guide.store import GuideStore
from shared.log import get_logger

logger = get_logger(__name__)

SUBMIT_LABEL = "SUBMIT UPDATE TO THE GUIDE"
HELP_TEXT = "type an update and press Enter, /log, /help, /quit"


class GuideView:
    """
    Terminal view over a GuideStore.

    ``entry`` plays the role of the text field: Enter on an empty line
    submits whatever it currently holds, so the initial value can be sent
    as is. Submitting clears it.
    """

    def __init__(self, store: GuideStore, console: Optional[Console] = None,
                 initial_entry: str = DEFAULT_INITIAL_ENTRY) -> None:
        self.store = store
        self.console = console or Console()
        self.entry = initial_entry

    def rows(self) -> List[Message]:
        """Most recent first"""
        return list(reversed(self.store.messages))

    def render_log(self) -> Table:
        table = Table(title=f"#{self.store.channel}")
        table.add_column("Type", style="bold")
        table.add_column("Message")
        for message in self.rows():
            table.add_row(Text(message.message_type), Text(message.message_text))
        return table

    def render(self) -> None:
        self.console.print(self.render_log())

    def submit_update(self) -> bool:
        if not self.entry:
            return False
        self.store.publish(self.entry)
        self.entry = ""
        return True

    def handle_line(self, line: str) -> bool:
        """Apply one line of input. Returns False when the user asked to quit."""
        line = line.strip()
        if line in {"/quit", "/exit"}:
            return False
        if line == "/help":
            self.console.print(HELP_TEXT)
            return True
        if line == "/log":
            self.render()
            return True
        if line.startswith("/"):
            self.console.print("Unknown command. /help")
            return True

        if line:
            self.entry = line
        self.submit_update()
        return True

    def _prompt(self) -> str:
        if self.entry:
            return f"{SUBMIT_LABEL} [{self.entry}]: "
        return f"{SUBMIT_LABEL}: "

    def _on_message(self, message: Message) -> None:
        self.console.print(f"[bold cyan]{escape(message.message_type)}[/] {escape(message.message_text)}",
                           highlight=False)

    async def run(self) -> None:
        self.console.print(f"[bold green]Listening on[/] {self.store.channel} as {self.store.client_id[:8]}")
        self.console.print(f"[dim]{HELP_TEXT}[/]")
        self.store.add_observer(self._on_message)
        try:
            while True:
                try:
                    line = await ainput(self._prompt())
                except EOFError:
                    break
                if not self.handle_line(line):
                    break
        finally:
            self.store.remove_observer(self._on_message)
            logger.debug("View stopped", extra={"client_id": self.store.client_id})
