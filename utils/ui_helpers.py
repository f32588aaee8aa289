import os
import json
from typing import List, Any, Dict, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def _print_records(
    title: str,
    empty_message: str,
    columns: Sequence[str],
    records: List[Dict[str, Any]],
    plain_line,
) -> None:
    """Print records in the active output mode.

    - plain: one line per record built by ``plain_line``, or ``empty_message``
    - json: the records as a JSON array
    - rich: a Rich table with the given columns
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(records, ensure_ascii=False, default=str))
        return

    if not records:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column.replace("_", " ").title(), style="white")
        for record in records:
            table.add_row(*(str(record.get(c, "")) for c in columns))
        _console.print(table)
    else:
        for record in records:
            print(plain_line(record))

def print_books(books: List[Any]) -> None:
    records = []
    for b in books:
        record = b.to_dict()
        record["available"] = b.available_copies
        record["total"] = len(b.copies)
        records.append(record)
    _print_records(
        "📚 Books",
        "No books in library.",
        ("id", "title", "author", "isbn", "available", "total"),
        records,
        lambda r: f"{r['id']} - {r['title']} by {r['author']} (ISBN: {r['isbn']}) [{r['available']}/{r['total']} available]",
    )

def print_users(users: List[Any]) -> None:
    _print_records(
        "👤 Users",
        "No users registered.",
        ("id", "name", "role"),
        [u.to_dict() for u in users],
        lambda r: f"{r['id']} - {r['name']} ({r['role']})",
    )

def print_checkouts(checkouts: List[Any]) -> None:
    def line(r: Dict[str, Any]) -> str:
        state = "returned" if r["returned"] else f"due {r['due_date']}"
        return f"{r['id']} - user {r['user_id']} has copy {r['book_copy_id']} ({state})"

    _print_records(
        "📖 Checkouts",
        "No checkouts.",
        ("id", "user_id", "book_copy_id", "due_date", "returned"),
        [c.to_dict() for c in checkouts],
        line,
    )

def print_reservations(reservations: List[Any]) -> None:
    def line(r: Dict[str, Any]) -> str:
        state = "waiting" if r["active"] else "served"
        return f"{r['id']} - user {r['user_id']} for book {r['book_id']} at {r['created_at']} ({state})"

    _print_records(
        "⏳ Reservations",
        "No reservations.",
        ("id", "user_id", "book_id", "created_at", "active"),
        [r.to_dict() for r in reservations],
        line,
    )

_STAT_LABELS: Tuple[Tuple[str, str], ...] = (
    ("total_books", "Total Books"),
    ("total_copies", "Total Copies"),
    ("available_copies", "Available Copies"),
    ("total_users", "Users"),
    ("open_checkouts", "Open Checkouts"),
    ("active_reservations", "Active Reservations"),
)

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the active output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in _STAT_LABELS)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in _STAT_LABELS:
            print(f"{label}: {stats.get(key, 0)}")
