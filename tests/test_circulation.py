from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from circulation import (
    AlreadyReturnedError,
    ConflictError,
    CopyStatus,
    ForbiddenError,
    NotFoundError,
    UnavailableError,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def book(lib):
    return lib.add_book("Dune", "Frank Herbert", "9780441172719", 1)

@pytest.fixture
def student(lib):
    return lib.register_user("Alice Reader", "student")

def _copy_status(lib, book_id):
    return [c.status for c in lib.find_book(book_id).copies]


# ------------------------- checkout ------------------------- #

def test_checkout_marks_copy_and_sets_due_date(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW)

    assert loan.user_id == student.id
    assert loan.book_copy_id == book.copies[0].id
    assert loan.due_date == NOW + timedelta(days=7)
    assert loan.returned is False
    assert _copy_status(lib, book.id) == [CopyStatus.CHECKED_OUT]
    assert lib.find_checkout(loan.id) == loan
    assert lib.find_copy(loan.book_copy_id).status is CopyStatus.CHECKED_OUT

def test_checkout_all_copies_then_unavailable(lib, student):
    book = lib.add_book("Clean Code", "Robert C. Martin", "9780132350884", 2)

    first = lib.checkout(student.id, book.id)
    second = lib.checkout(student.id, book.id)

    assert first.book_copy_id != second.book_copy_id
    assert _copy_status(lib, book.id) == [CopyStatus.CHECKED_OUT, CopyStatus.CHECKED_OUT]
    with pytest.raises(UnavailableError, match="No copies available"):
        lib.checkout(student.id, book.id)
    assert len(lib.list_checkouts()) == 2

def test_checkout_picks_lowest_available_copy(lib, student):
    book = lib.add_book("Clean Code", "Robert C. Martin", "9780132350884", 3)
    loan = lib.checkout(student.id, book.id)
    assert loan.book_copy_id == min(c.id for c in book.copies)

def test_checkout_unknown_user(lib, book):
    with pytest.raises(NotFoundError, match="User not found"):
        lib.checkout(999, book.id)
    assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]

def test_librarian_cannot_checkout(lib, book):
    librarian = lib.register_user("Bob Librarian", "librarian")
    with pytest.raises(ForbiddenError, match="Only students can checkout"):
        lib.checkout(librarian.id, book.id)
    assert lib.list_checkouts() == []
    assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]

def test_checkout_unknown_book_is_unavailable(lib, student):
    with pytest.raises(UnavailableError):
        lib.checkout(student.id, 12345)

def test_concurrent_checkouts_claim_last_copy_once(lib, book):
    students = [lib.register_user(f"Student {i}", "student") for i in range(8)]

    def attempt(user):
        try:
            return lib.checkout(user.id, book.id)
        except UnavailableError:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, students))

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert len(lib.engine.open_checkouts_for_copy(book.copies[0].id)) == 1


# ------------------------- return & fines ------------------------- #

def test_return_on_time_has_no_fine(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW)

    result = lib.return_checkout(loan.id, now=NOW + timedelta(days=7))

    assert result.fine == 0
    assert result.checkout.returned is True
    assert result.next_checkout is None
    assert lib.find_checkout(loan.id).returned is True
    assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]

def test_return_ten_days_late_fines_100(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW - timedelta(days=17))
    assert loan.due_date == NOW - timedelta(days=10)

    result = lib.return_checkout(loan.id, now=NOW)

    assert result.fine == 100

@pytest.mark.parametrize(
    "hours_late, expected",
    [(0, 0), (1, 0), (23.99, 0), (24, 10), (47.5, 10), (48, 20), (24 * 30 + 5, 300)],
)
def test_fine_counts_full_days_only(lib, hours_late, expected):
    due = NOW
    assert lib.engine.compute_fine(due, due + timedelta(hours=hours_late)) == expected

def test_fine_is_zero_before_due_date(lib):
    assert lib.engine.compute_fine(NOW, NOW - timedelta(days=3)) == 0

def test_fine_rate_is_configurable(db_file):
    from circulation import Library

    lib = Library(db_file=db_file, fine_per_day=25, loan_period_days=14)
    book = lib.add_book("Dune", "Frank Herbert", "9780441172719", 1)
    student = lib.register_user("Alice", "student")
    loan = lib.checkout(student.id, book.id, now=NOW)
    assert loan.due_date == NOW + timedelta(days=14)

    result = lib.return_checkout(loan.id, now=loan.due_date + timedelta(days=2, hours=3))
    assert result.fine == 50

def test_double_return_fails(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW - timedelta(days=17))
    first = lib.return_checkout(loan.id, now=NOW)
    assert first.fine == 100

    with pytest.raises(AlreadyReturnedError, match="Already returned"):
        lib.return_checkout(loan.id, now=NOW + timedelta(days=30))

    assert lib.find_checkout(loan.id).returned is True
    assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]

def test_already_returned_is_a_conflict(lib, book, student):
    loan = lib.checkout(student.id, book.id)
    lib.return_checkout(loan.id)
    with pytest.raises(ConflictError):
        lib.return_checkout(loan.id)

def test_return_unknown_checkout(lib):
    with pytest.raises(NotFoundError, match="Checkout not found"):
        lib.return_checkout(42)

def test_concurrent_returns_close_checkout_once(lib, book, student):
    loan = lib.checkout(student.id, book.id)

    def attempt(_):
        try:
            lib.return_checkout(loan.id)
            return True
        except AlreadyReturnedError:
            return False

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(4)))

    assert outcomes.count(True) == 1

def test_copy_cycles_through_repeated_loans(lib, book, student):
    for _ in range(3):
        loan = lib.checkout(student.id, book.id)
        assert _copy_status(lib, book.id) == [CopyStatus.CHECKED_OUT]
        lib.return_checkout(loan.id)
        assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]
    assert len(lib.list_checkouts()) == 3


# ------------------------- reservations ------------------------- #

def test_reserve_is_permissive(lib):
    # no user, no book, duplicates allowed
    first = lib.reserve(77, 88, now=NOW)
    second = lib.reserve(77, 88, now=NOW + timedelta(minutes=1))

    assert first.active and second.active
    assert first.created_at == NOW
    assert [r.id for r in lib.list_reservations(book_id=88)] == [first.id, second.id]

def test_return_hands_copy_to_earliest_reservation(lib, book, student):
    user_a = lib.register_user("User A", "student")
    user_b = lib.register_user("User B", "student")
    loan = lib.checkout(student.id, book.id, now=NOW)
    res_a = lib.reserve(user_a.id, book.id, now=NOW + timedelta(hours=1))
    res_b = lib.reserve(user_b.id, book.id, now=NOW + timedelta(hours=2))

    result = lib.return_checkout(loan.id, now=NOW + timedelta(days=1))

    assert result.fulfilled_reservation.id == res_a.id
    assert result.next_checkout.user_id == user_a.id
    assert result.next_checkout.book_copy_id == loan.book_copy_id
    assert result.next_checkout.due_date == NOW + timedelta(days=8)
    assert _copy_status(lib, book.id) == [CopyStatus.CHECKED_OUT]

    reservations = {r.id: r for r in lib.list_reservations(book_id=book.id)}
    assert reservations[res_a.id].active is False
    assert reservations[res_b.id].active is True

    open_loans = lib.engine.open_checkouts_for_copy(loan.book_copy_id)
    assert [c.user_id for c in open_loans] == [user_a.id]

def test_queue_is_ordered_by_creation_time_not_id(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW)
    later = lib.reserve(501, book.id, now=NOW + timedelta(hours=5))
    earlier = lib.reserve(502, book.id, now=NOW + timedelta(hours=1))

    result = lib.return_checkout(loan.id, now=NOW + timedelta(days=1))

    assert result.fulfilled_reservation.id == earlier.id
    assert lib.reservations.peek(book.id).id == later.id

def test_queue_drains_one_reservation_per_return(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW)
    for i, user_id in enumerate((601, 602, 603)):
        lib.reserve(user_id, book.id, now=NOW + timedelta(minutes=i))

    served = []
    for day in range(1, 4):
        result = lib.return_checkout(loan.id, now=NOW + timedelta(days=day))
        loan = result.next_checkout
        served.append(loan.user_id)

    assert served == [601, 602, 603]
    final = lib.return_checkout(loan.id, now=NOW + timedelta(days=4))
    assert final.next_checkout is None
    assert _copy_status(lib, book.id) == [CopyStatus.AVAILABLE]
    assert lib.list_reservations(book_id=book.id, active_only=True) == []

def test_reservations_for_other_books_are_ignored(lib, book, student):
    other = lib.add_book("Clean Code", "Robert C. Martin", "9780132350884", 1)
    lib.reserve(student.id, other.id, now=NOW)
    loan = lib.checkout(student.id, book.id, now=NOW)

    result = lib.return_checkout(loan.id, now=NOW + timedelta(days=1))

    assert result.next_checkout is None
    assert lib.reservations.peek(other.id) is not None

def test_late_return_with_queue_still_reports_fine(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=NOW - timedelta(days=17))
    lib.reserve(700, book.id, now=NOW - timedelta(days=12))

    result = lib.return_checkout(loan.id, now=NOW)

    assert result.fine == 100
    assert result.next_checkout.user_id == 700
    assert result.next_checkout.due_date == NOW + timedelta(days=7)

def test_naive_timestamps_are_treated_as_utc(lib, book, student):
    loan = lib.checkout(student.id, book.id, now=datetime(2026, 3, 1, 12, 0))
    assert loan.due_date == NOW + timedelta(days=7)
    assert lib.return_checkout(loan.id, now=datetime(2026, 3, 10, 12, 0)).fine == 20
