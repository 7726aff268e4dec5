import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling CLI output; allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LENDING_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_book_list(books: List[Dict[str, Any]]) -> None:
    """Print books (as API dicts) in the current output mode.
    - plain: 'title / authors / rating (count)' lines, or 'No books registered.'
    - json: the dicts as a JSON array
    - rich: a table
    """
    mode = get_output_mode()

    if not books:
        print("No books registered.")
        return

    if mode == "json":
        print(json.dumps(books, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Authors", style="white")
        table.add_column("Rating", justify="right")
        for b in books:
            table.add_row(
                b.get("isbn", ""),
                b.get("title", ""),
                ", ".join(b.get("authors", [])),
                f"{b.get('averageRating', 0):.1f} ({b.get('reviewCount', 0)})",
            )
        _console.print(table)
    else:
        for b in books:
            authors = ", ".join(b.get("authors", [])) or "-"
            print(f"{b.get('title', '')} / {authors} / {b.get('averageRating', 0):.1f} ({b.get('reviewCount', 0)})")


def print_import_result(results: List[Dict[str, Any]], created: int) -> None:
    mode = get_output_mode()
    counts = {status: sum(1 for r in results if r["status"] == status) for status in ("success", "not_found", "error")}

    if mode == "json":
        print(json.dumps({"results": results, "created": created}, ensure_ascii=False))
        return

    if mode == "rich":
        for r in results:
            colour = {"success": "green", "not_found": "yellow"}.get(r["status"], "red")
            _console.print(f"[{colour}]{r['status']}[/]: {r['title']} {r['message']}")
        _console.print(Panel.fit(
            f"[green]{counts['success']} found[/], [yellow]{counts['not_found']} not found[/], "
            f"[red]{counts['error']} failed[/]\n[bold]{created} books registered[/]",
            title="📥 Import",
            border_style="green" if counts["error"] == 0 else "yellow",
        ))
        return

    for r in results:
        suffix = f" - {r['message']}" if r["message"] else ""
        print(f"[{r['status']}] {r['title']}{suffix}")
    print(f"Found: {counts['success']}, not found: {counts['not_found']}, failed: {counts['error']}")
    print(f"Registered: {created}")
