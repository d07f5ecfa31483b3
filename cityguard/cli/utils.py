"""
Console output helpers for the CLI.
"""
from rich.console import Console

console = Console()
error_console = Console(stderr=True)


def _emit(target: Console, style: str, symbol: str, message: str) -> None:
    target.print(f"{symbol} {message}", style=style, highlight=False)


def print_success(message: str) -> None:
    _emit(console, "green", "✓", message)


def print_error(message: str) -> None:
    _emit(error_console, "bold red", "✗", message)


def print_warning(message: str) -> None:
    _emit(console, "yellow", "!", message)


def print_info(message: str) -> None:
    _emit(console, "cyan", "·", message)
