import sqlite3

import pytest

from circulation import CopyStatus, Library, Role, ValidationError


def test_add_book_creates_available_copies(lib):
    assert lib.list_books() == []

    book = lib.add_book("Ulysses", "James Joyce", "9780199535675", 3)

    assert book.id is not None
    assert len(book.copies) == 3
    assert all(c.status is CopyStatus.AVAILABLE for c in book.copies)
    assert all(c.book_id == book.id for c in book.copies)

    books = lib.list_books()
    assert len(books) == 1
    assert books[0].title == "Ulysses"
    assert [c.id for c in books[0].copies] == sorted(c.id for c in book.copies)

def test_add_book_with_zero_or_negative_copies(lib):
    zero = lib.add_book("Empty Shelf", "Nobody", "111", 0)
    negative = lib.add_book("Negative Shelf", "Nobody", "222", -4)

    assert zero.copies == []
    assert negative.copies == []
    assert [len(b.copies) for b in lib.list_books()] == [0, 0]

def test_add_book_strips_whitespace(lib):
    book = lib.add_book("  Sapiens ", " Yuval Noah Harari", " 9780099590088 ", 1)
    assert book.title == "Sapiens"
    assert book.author == "Yuval Noah Harari"
    assert book.isbn == "9780099590088"

def test_list_books_attaches_each_books_copies(lib):
    first = lib.add_book("Dune", "Frank Herbert", "9780441172719", 2)
    second = lib.add_book("Clean Code", "Robert C. Martin", "9780132350884", 1)

    books = {b.id: b for b in lib.list_books()}
    assert len(books[first.id].copies) == 2
    assert len(books[second.id].copies) == 1
    assert {c.book_id for c in books[second.id].copies} == {second.id}

def test_find_book(lib):
    book = lib.add_book("Dune", "Frank Herbert", "9780441172719", 1)
    assert lib.find_book(book.id).isbn == "9780441172719"
    assert lib.find_book(999) is None

def test_register_user(lib):
    student = lib.register_user("Alice Reader", "student")
    librarian = lib.register_user("Bob Librarian", "librarian")

    assert student.role is Role.STUDENT
    assert librarian.role is Role.LIBRARIAN
    assert [u.name for u in lib.list_users()] == ["Alice Reader", "Bob Librarian"]
    assert lib.find_user(student.id).name == "Alice Reader"

def test_register_user_rejects_unknown_role(lib):
    with pytest.raises(ValidationError, match="Role must be student or librarian"):
        lib.register_user("Ava Admin", "admin")

    assert lib.list_users() == []

def test_register_user_role_is_case_sensitive(lib):
    with pytest.raises(ValidationError):
        lib.register_user("Carol", "Student")

@pytest.mark.parametrize("role", [" student ", "librarian\n", "\tstudent"])
def test_register_user_rejects_padded_role(lib, role):
    with pytest.raises(ValidationError):
        lib.register_user("Pad", role)

    assert lib.list_users() == []

def test_add_book_keeps_inner_whitespace(lib):
    book = lib.add_book(" The  Left Hand ", "Ursula  K. Le Guin", "978 0441478125", 1)
    assert book.title == "The  Left Hand"
    assert lib.find_book(book.id).author == "Ursula  K. Le Guin"
    assert lib.find_book(book.id).isbn == "978 0441478125"

def test_find_copy(lib):
    book = lib.add_book("Dune", "Frank Herbert", "9780441172719", 2)
    copy = lib.find_copy(book.copies[1].id)

    assert copy.id == book.copies[1].id
    assert copy.book_id == book.id
    assert copy.status is CopyStatus.AVAILABLE
    assert lib.find_copy(999) is None

def test_persistence(db_file):
    lib = Library(db_file=db_file)
    lib.add_book("Sapiens", "Yuval Noah Harari", "9780099590088", 2)
    lib.register_user("Alice", "student")

    # New instance on the same file reads the persisted rows and re-runs the schema setup
    lib2 = Library(db_file=db_file)
    assert len(lib2.list_books()) == 1
    assert len(lib2.list_books()[0].copies) == 2
    assert len(lib2.list_users()) == 1

def test_copy_status_is_constrained_by_schema(lib):
    book = lib.add_book("Dune", "Frank Herbert", "9780441172719", 1)
    with pytest.raises(sqlite3.IntegrityError):
        with lib.db.transaction() as conn:
            conn.execute("UPDATE book_copies SET status = 'lost' WHERE id = ?", (book.copies[0].id,))

    assert lib.find_book(book.id).copies[0].status is CopyStatus.AVAILABLE

def test_transaction_rolls_back_on_error(lib):
    with pytest.raises(RuntimeError):
        with lib.db.transaction() as conn:
            conn.execute("INSERT INTO users (name, role) VALUES ('Ghost', 'student')")
            raise RuntimeError("boom")

    assert lib.list_users() == []

def test_statistics(lib):
    book = lib.add_book("Dune", "Frank Herbert", "9780441172719", 2)
    student = lib.register_user("Alice", "student")
    lib.checkout(student.id, book.id)
    lib.reserve(student.id, book.id)

    stats = lib.get_statistics()
    assert stats == {
        "total_books": 1,
        "total_copies": 2,
        "available_copies": 1,
        "total_users": 1,
        "open_checkouts": 1,
        "active_reservations": 1,
    }

def test_health_ping(lib):
    assert lib.db.ping() is True
