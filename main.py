import logging
import os
import subprocess
import sys
import webbrowser
from functools import wraps
from typing import Optional

import typer

from circulation import Library, LibraryError
from config import settings
from utils.ui_helpers import (
    set_output_mode,
    print_books,
    print_users,
    print_checkouts,
    print_reservations,
    print_stats_result,
)

APP_NAME = "Library CLI"


# Single Library instance per database file
class LibraryManager:
    _instance: Optional[Library] = None
    _db_file: Optional[str] = None

    @classmethod
    def use_database(cls, db_file: str) -> None:
        cls._db_file = db_file

    @classmethod
    def get_instance(cls) -> Library:
        """Get or create the Library, reopening it if the database file changed."""
        db_file = cls._db_file or settings.database_file
        if cls._instance is None or cls._instance.db.db_file != db_file:
            if cls._instance is not None:
                cls._instance.close()
            cls._instance = Library(db_file)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None
        cls._db_file = None


# Turn domain errors into a one-line message and a failing exit code
def handle_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print(f"Error: {e.message}")
            raise typer.Exit(code=1)
    return wrapper


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Global options for the CLI (output mode, database file)."""
    logging.basicConfig(level=logging.WARNING)
    if output:
        set_output_mode(output)
    if db:
        LibraryManager.use_database(db)

@app.command("books")
def cli_books():
    """List all books with copy availability."""
    print_books(LibraryManager.get_instance().list_books())

@app.command("add-book")
@handle_errors
def cli_add_book(
    title: str,
    author: str,
    isbn: str,
    copies: int = typer.Option(1, "--copies", "-c", help="Number of copies to create"),
):
    """Add a book and its copies to the catalog."""
    book = LibraryManager.get_instance().add_book(title, author, isbn, copies)
    print(f"Book added successfully: {book.title} by {book.author} (id {book.id}, {len(book.copies)} copies)")

@app.command("users")
def cli_users():
    """List registered users."""
    print_users(LibraryManager.get_instance().list_users())

@app.command("add-user")
@handle_errors
def cli_add_user(name: str, role: str = typer.Argument(..., help="student or librarian")):
    """Register a user."""
    user = LibraryManager.get_instance().register_user(name, role)
    print(f"User created successfully: {user.name} (id {user.id}, {user.role.value})")

@app.command("checkout")
@handle_errors
def cli_checkout(user_id: int, book_id: int):
    """Check out any available copy of a book for a student."""
    loan = LibraryManager.get_instance().checkout(user_id, book_id)
    print(f"Book checked out successfully: checkout {loan.id}, copy {loan.book_copy_id}, due {loan.due_date.isoformat()}")

@app.command("return")
@handle_errors
def cli_return(checkout_id: int):
    """Return a checkout and report the late fine."""
    result = LibraryManager.get_instance().return_checkout(checkout_id)
    print(f"Book returned successfully. Fine: {result.fine}")
    if result.next_checkout is not None:
        print(
            f"Copy {result.next_checkout.book_copy_id} passed to user {result.next_checkout.user_id} "
            f"(reservation {result.fulfilled_reservation.id}, checkout {result.next_checkout.id})"
        )

@app.command("reserve")
@handle_errors
def cli_reserve(user_id: int, book_id: int):
    """Join the waitlist for a book."""
    reservation = LibraryManager.get_instance().reserve(user_id, book_id)
    print(f"Book reserved successfully: reservation {reservation.id}")

@app.command("checkouts")
def cli_checkouts():
    """List all checkouts."""
    print_checkouts(LibraryManager.get_instance().list_checkouts())

@app.command("reservations")
def cli_reservations(
    book_id: Optional[int] = typer.Option(None, "--book-id", "-b", help="Only this book's queue"),
    active: bool = typer.Option(False, "--active", help="Only waiting reservations"),
):
    """List reservations in queue order."""
    print_reservations(LibraryManager.get_instance().list_reservations(book_id=book_id, active_only=active))

@app.command("stats")
def cli_stats():
    """Show collection and circulation statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())

@app.command("serve")
def cli_serve(
    open_browser: bool = typer.Option(False, "--open", help="Open the API docs in a browser"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/"
    print(f"Starting API on {url}")
    if open_browser:
        webbrowser.open(url + "docs")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    env = dict(os.environ)
    if LibraryManager._db_file:
        env["LIBRARY_DB_FILE"] = LibraryManager._db_file
    try:
        subprocess.run(args, env=env, check=False)
    except KeyboardInterrupt:
        print("Server stopped.")


if __name__ == "__main__":
    app()
