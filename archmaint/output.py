from rich.console import Console
from rich.markup import escape

console = Console()


def info(msg: str):
    console.print(escape(msg))


def success(msg: str):
    console.print(f'[green]✓[/green] {escape(msg)}')


def warning(msg: str):
    console.print(f'[yellow]![/yellow] {escape(msg)}')


def error(msg: str):
    console.print(f'[red]✗[/red] {escape(msg)}')


def added(msg: str):
    console.print(f'[green]  + {escape(msg)}[/green]')


def removed(msg: str):
    console.print(f'[red]  - {escape(msg)}[/red]')


def header(msg: str):
    console.print(f'\n[bold blue]\\[*][/bold blue] [bold]{escape(msg)}[/bold]')


def plain(text: str):
    """Print text as-is, without markup or highlighting."""
    console.print(text, markup=False, highlight=False)
