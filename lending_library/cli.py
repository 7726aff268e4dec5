import asyncio
import logging
import os
import subprocess
import sys
from typing import List, Optional

import typer

from lending_library.config import settings
from lending_library.library import Library
from lending_library.models import ROLE_ADMIN, ROLE_USER
from lending_library.services.google_books_service import GoogleBooksService
from lending_library.services.http_client import cleanup_http_client
from lending_library.ui_helpers import print_book_list, print_import_result, set_output_mode

app = typer.Typer(help="Lending library operator CLI")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global options (output mode)."""
    logging.basicConfig(level=getattr(logging, settings.effective_log_level, logging.INFO))
    if output:
        set_output_mode(output)


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Run the HTTP API under uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "lending_library.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    if settings.debug:
        args.extend(["--log-level", "debug"])
    subprocess.run(args)


@app.command("init-tables")
def cli_init_tables():
    """Create missing tables and header rows."""
    changed = Library().init_tables()
    if changed:
        print(f"Initialized: {', '.join(changed)}")
    else:
        print("All tables already initialized.")


@app.command("set-role")
def cli_set_role(email: str, role: str = typer.Argument(..., help="admin | user")):
    """Grant or revoke administrator rights."""
    if role not in (ROLE_ADMIN, ROLE_USER):
        print(f"Unknown role: {role}. Use admin or user.")
        raise typer.Exit(code=1)
    created = Library().users.set_role(email, role)
    print(f"{'Added' if created else 'Updated'} {email}: {role}")


@app.command("list-books")
def cli_list_books():
    """List registered books with their review averages."""
    books = [b.to_dict() for b in Library().list_books_with_review_stats()]
    print_book_list(books)


async def _import(titles: List[str], created_by: str, delay: float):
    try:
        return await Library().register_titles(titles, created_by, GoogleBooksService(), delay=delay)
    finally:
        await cleanup_http_client()


@app.command("import-titles")
def cli_import_titles(
    file_path: str,
    created_by: str = typer.Option(..., "--created-by", help="Email recorded as the registering user"),
    delay: float = typer.Option(0.5, "--delay", help="Seconds to wait between catalog searches"),
):
    """Register books from a file with one title per line."""
    if not os.path.exists(file_path):
        print(f"File not found: {file_path}")
        raise typer.Exit(code=1)

    with open(file_path, "r", encoding="utf-8") as f:
        titles = [line.strip() for line in f if line.strip()]
    if not titles:
        print("No titles to register.")
        return

    outcome = asyncio.run(_import(titles, created_by, delay))
    print_import_result([r.to_dict() for r in outcome.results], len(outcome.created))


if __name__ == "__main__":
    app()
