import json
import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.box import ROUNDED, HEAVY, SIMPLE
from rich.json import JSON
from rich.text import Text
from rich.table import Table

from sourcer.domain.interfaces.user_interface import UserInterface
from sourcer.domain.models.api import ApiResponse

logger = logging.getLogger(__name__)

# Lists of flat records up to this many columns render as a table
MAX_TABLE_COLUMNS = 8


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    @staticmethod
    def _as_table(records: List[Any], title: str) -> Optional[Table]:
        """Builds a table when every record is a flat dict, else None."""
        if not records or not all(isinstance(r, dict) for r in records):
            return None
        columns: List[str] = []
        for record in records:
            for key, value in record.items():
                if isinstance(value, (dict, list)):
                    return None
                if key not in columns:
                    columns.append(key)
        if len(columns) > MAX_TABLE_COLUMNS:
            return None

        table = Table(title=title, box=ROUNDED, show_lines=False)
        for column in columns:
            table.add_column(str(column), overflow="fold")
        for record in records:
            table.add_row(*[str(record.get(column, "")) for column in columns])
        return table

    def display_response(self, response: ApiResponse, **kwargs: Any) -> None:
        """Displays a response: a table for record lists, JSON otherwise.

        Args:
            response: The envelope to display.
            **kwargs: Additional arguments including:
                - title: Panel title (default: "Result")
        """
        title = kwargs.get("title", "Result")
        if not response.success:
            self.display_error(f"[{response.code}] {response.message}")
            return

        data = response.data
        if isinstance(data, dict):
            # Unwrap single-list payloads such as {"products": [...]}
            lists = [v for v in data.values() if isinstance(v, list)]
            if len(data) == 1 and len(lists) == 1:
                data = lists[0]

        if isinstance(data, list):
            table = self._as_table(data, title)
            if table is not None:
                self.console.print(table)
                return

        if data is None:
            self.display_info(response.message or "No data returned.")
            return

        body = JSON(json.dumps(data, ensure_ascii=False, default=str))
        self.console.print(Panel(body, title=f"[bold white]{title}[/bold white]", border_style="blue", box=ROUNDED))
        if response.message:
            self.display_info(response.message)

    def display_status(self, status: Dict[str, Any], **kwargs: Any) -> None:
        table = Table(title=kwargs.get("title", "Status"), box=SIMPLE, show_header=False)
        table.add_column("Setting", style="bold cyan")
        table.add_column("Value")
        for key, value in status.items():
            table.add_row(str(key), str(value))
        self.console.print(table)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)
