"""
stack_display.py

Rich terminal rendering for the deploy and cleanup commands.

Functions:
  setup_logging()     - file log plus Rich console handler
  print_banner()      - command header
  print_info() / print_success() / print_warning() / print_error()
  print_event()       - one stack event, styled by its severity
  print_outputs()     - stack outputs block
  print_resources()   - resources about to be deleted
  ask()               - interactive prompt
"""

import logging
from typing import Dict, List

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from stack_config import DEFAULT_LOG_FILE
from stack_monitor import EventSeverity, StackEvent

console = Console(highlight=False)

_EVENT_STYLES = {
    EventSeverity.SUCCESS: ("✓", "green"),
    EventSeverity.ERROR: ("✗", "red"),
    EventSeverity.INFO: ("ℹ", "blue"),
}


def setup_logging(log_file: str = DEFAULT_LOG_FILE, verbose: bool = False) -> None:
    """Log everything to a file and warnings (or everything with -v) to the console."""
    console_handler = RichHandler(
        console=console, show_time=False, show_path=False, markup=False
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not verbose:
        # Fatal errors are reported by the commands themselves
        console_handler.addFilter(lambda record: record.levelno < logging.ERROR)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file, delay=True),
            console_handler,
        ],
    )
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_banner(title: str) -> None:
    console.print()
    console.print(Panel(Text(title, style="bold blue", justify="center"), border_style="blue"))
    console.print()


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {escape(message)}")


def print_plain(message: str = "") -> None:
    console.print(escape(message))


def print_event(event: StackEvent) -> None:
    """Print one stack event; failures also show their reason."""
    line = escape(f"{event.logical_id} ({event.resource_type}): {event.resource_status}")
    severity = event.severity
    if severity in _EVENT_STYLES:
        icon, style = _EVENT_STYLES[severity]
        console.print(f"[{style}]{icon}[/{style}] {line}")
    else:
        console.print(f"  {line}")

    if severity is EventSeverity.ERROR and event.reason:
        console.print(f"  Reason: {escape(event.reason)}")


def print_outputs(outputs) -> None:
    """Render stack outputs as key, value and optional description."""
    body = Text()
    for index, output in enumerate(outputs):
        if index:
            body.append("\n\n")
        body.append(f"{output.key}:\n", style="bold blue")
        body.append(f"  {output.value}")
        if output.description:
            body.append(f"\n  ({output.description})", style="yellow")

    console.print()
    console.print(
        Panel(
            body,
            title="[bold green]STACK OUTPUTS[/bold green]",
            border_style="green",
            box=box.HEAVY,
            padding=(1, 2),
        )
    )


def print_resources(resources: List[Dict[str, str]]) -> None:
    console.print()
    print_warning("The following resources will be deleted:")
    console.print()
    for resource in resources:
        console.print(f"  • {escape(resource['logical_id'])} ({escape(resource['resource_type'])})")
    console.print()


def ask(prompt: str) -> str:
    """Read one line of input from the terminal."""
    return console.input(escape(prompt)).strip()
