from datetime import timedelta

import pytest

from app.models.models import BorrowingRequest, BorrowingStatus, RequestLine
from app.services.borrowing import BorrowingWorkflow
from app.services.result import FailureKind


def outstanding_lines(db, book_id):
    return (
        db.query(RequestLine)
        .join(BorrowingRequest)
        .filter(RequestLine.book_id == book_id,
                BorrowingRequest.status != BorrowingStatus.REJECTED)
        .count()
    )


def test_create_reserves_last_copy(db, workflow, member, make_book, clock, admin):
    book = make_book(quantity=3, available=1)

    result = workflow.create_request(member.id, [book.id])

    assert result.is_success
    request = result.value
    assert request.status is BorrowingStatus.WAITING
    assert request.requestor_id == member.id
    assert request.approver_id == admin.id
    assert request.request_date == clock.now()
    assert request.expiration_date == clock.now() + timedelta(days=30)
    assert [line.book_id for line in request.lines] == [book.id]
    db.refresh(book)
    assert book.available_quantity == 0


def test_second_user_cannot_take_reserved_copy(db, workflow, member, make_user, make_book):
    book = make_book(quantity=3, available=1)
    other = make_user("bob")
    assert workflow.create_request(member.id, [book.id]).is_success

    result = workflow.create_request(other.id, [book.id])

    assert not result.is_success
    assert result.kind is FailureKind.BOOK_UNAVAILABLE
    assert result.status_code == 400
    assert str(book.id) in result.message
    db.refresh(book)
    assert book.available_quantity == 0
    assert db.query(BorrowingRequest).filter(BorrowingRequest.requestor_id == other.id).count() == 0


def test_reject_restores_availability(db, workflow, member, admin, make_book):
    book = make_book(quantity=3, available=1)
    request = workflow.create_request(member.id, [book.id]).value

    result = workflow.decide_request(request.id, BorrowingStatus.REJECTED, admin.id)

    assert result.is_success
    assert result.value.status is BorrowingStatus.REJECTED
    assert result.value.approver_id == admin.id
    db.refresh(book)
    assert book.available_quantity == 1


def test_approve_keeps_copies_out_of_availability(db, workflow, member, make_user, make_book):
    second_admin = make_user("carol")
    book = make_book(quantity=2)
    request = workflow.create_request(member.id, [book.id]).value

    result = workflow.decide_request(request.id, BorrowingStatus.APPROVED, second_admin.id)

    assert result.is_success
    assert result.value.status is BorrowingStatus.APPROVED
    assert result.value.approver_id == second_admin.id
    db.refresh(book)
    assert book.available_quantity == 1


def test_duplicate_ids_consume_one_copy_each(db, workflow, member, admin, make_book):
    book = make_book(quantity=3)

    request = workflow.create_request(member.id, [book.id, book.id]).value

    assert len(request.lines) == 2
    db.refresh(book)
    assert book.available_quantity == 1

    workflow.decide_request(request.id, BorrowingStatus.REJECTED, admin.id)
    db.refresh(book)
    assert book.available_quantity == 3


def test_duplicate_ids_beyond_stock_are_unavailable(db, workflow, member, make_book):
    book = make_book(quantity=1)

    result = workflow.create_request(member.id, [book.id, book.id])

    assert result.kind is FailureKind.BOOK_UNAVAILABLE
    db.refresh(book)
    assert book.available_quantity == 1


def test_failure_midway_rolls_back_earlier_reservations(db, workflow, member, make_book):
    first = make_book("First", quantity=2)
    empty = make_book("Empty", quantity=2, available=0)

    result = workflow.create_request(member.id, [first.id, empty.id])

    assert result.kind is FailureKind.BOOK_UNAVAILABLE
    db.refresh(first)
    assert first.available_quantity == 2
    assert db.query(BorrowingRequest).count() == 0


def test_unknown_book_aborts_without_side_effects(db, workflow, member, make_book):
    book = make_book(quantity=2)

    result = workflow.create_request(member.id, [book.id, 9999])

    assert result.kind is FailureKind.BOOK_NOT_FOUND
    assert "9999" in result.message
    db.refresh(book)
    assert book.available_quantity == 2
    assert db.query(BorrowingRequest).count() == 0


def test_unknown_requestor(workflow, make_book):
    book = make_book()

    result = workflow.create_request(12345, [book.id])

    assert result.kind is FailureKind.USER_NOT_FOUND


@pytest.mark.parametrize("admin_id", [None, 424242])
def test_missing_admin_account_aborts(db, member, make_book, clock, admin_id):
    book = make_book(quantity=2)
    workflow = BorrowingWorkflow(db, admin_account_id=admin_id, clock=clock)

    result = workflow.create_request(member.id, [book.id])

    assert result.kind is FailureKind.ADMIN_NOT_CONFIGURED
    db.refresh(book)
    assert book.available_quantity == 2
    assert db.query(BorrowingRequest).count() == 0


def test_admin_id_of_plain_user_is_not_an_approver(db, member, make_book, clock):
    book = make_book()
    workflow = BorrowingWorkflow(db, admin_account_id=member.id, clock=clock)

    assert workflow.create_request(member.id, [book.id]).kind is FailureKind.ADMIN_NOT_CONFIGURED


@pytest.mark.parametrize("first, second", [
    (BorrowingStatus.REJECTED, BorrowingStatus.REJECTED),
    (BorrowingStatus.REJECTED, BorrowingStatus.APPROVED),
    (BorrowingStatus.APPROVED, BorrowingStatus.REJECTED),
])
def test_terminal_status_never_changes(db, workflow, member, admin, make_book, first, second):
    book = make_book(quantity=2)
    request = workflow.create_request(member.id, [book.id]).value
    workflow.decide_request(request.id, first, admin.id)
    db.refresh(book)
    available = book.available_quantity

    result = workflow.decide_request(request.id, second, admin.id)

    assert result.kind is FailureKind.INVALID_TRANSITION
    assert f"already {first.value}" in result.message
    db.refresh(book)
    assert book.available_quantity == available
    assert db.get(BorrowingRequest, request.id).status is first


def test_decide_unknown_request(workflow, admin):
    result = workflow.decide_request(777, BorrowingStatus.APPROVED, admin.id)

    assert result.kind is FailureKind.REQUEST_NOT_FOUND
    assert result.status_code == 404


def test_waiting_is_not_a_decision(workflow, admin):
    with pytest.raises(ValueError):
        workflow.decide_request(1, BorrowingStatus.WAITING, admin.id)


def test_reject_with_missing_book_reports_corruption(db, workflow, member, admin, make_book):
    book = make_book(quantity=2)
    request = workflow.create_request(member.id, [book.id]).value
    line = request.lines[0]
    line.book_id = None
    db.commit()

    result = workflow.decide_request(request.id, BorrowingStatus.REJECTED, admin.id)

    assert result.kind is FailureKind.BOOK_NOT_FOUND
    assert db.get(BorrowingRequest, request.id).status is BorrowingStatus.WAITING


def test_copies_are_conserved_across_the_lifecycle(db, workflow, member, make_user, admin, make_book):
    books = [make_book(f"Book {i}", quantity=4) for i in range(3)]
    bob = make_user("bob")
    r1 = workflow.create_request(member.id, [books[0].id, books[1].id]).value
    r2 = workflow.create_request(bob.id, [books[0].id, books[0].id, books[2].id]).value
    workflow.create_request(member.id, [books[2].id])
    workflow.decide_request(r1.id, BorrowingStatus.APPROVED, admin.id)
    workflow.decide_request(r2.id, BorrowingStatus.REJECTED, admin.id)

    for book in books:
        db.refresh(book)
        assert 0 <= book.available_quantity <= book.quantity
        assert outstanding_lines(db, book.id) + book.available_quantity == book.quantity


def test_monthly_count_requires_existing_user(workflow):
    assert workflow.monthly_count(4040).kind is FailureKind.USER_NOT_FOUND


def test_list_requests_filters_by_status(workflow, member, admin, make_book):
    book = make_book(quantity=5)
    first = workflow.create_request(member.id, [book.id]).value
    workflow.create_request(member.id, [book.id])
    workflow.decide_request(first.id, BorrowingStatus.APPROVED, admin.id)

    page = workflow.list_requests(1, 10, BorrowingStatus.WAITING)

    assert page["total_items"] == 1
    assert page["items"][0].status is BorrowingStatus.WAITING
    assert workflow.list_requests(1, 10)["total_items"] == 2


def test_list_user_requests_only_returns_own(workflow, member, make_user, make_book):
    book = make_book(quantity=5)
    bob = make_user("bob")
    workflow.create_request(member.id, [book.id])
    workflow.create_request(bob.id, [book.id])

    page = workflow.list_user_requests(member.id, 1, 10).value

    assert page["total_items"] == 1
    assert page["items"][0].requestor_id == member.id
    assert workflow.list_user_requests(999, 1, 10).kind is FailureKind.USER_NOT_FOUND


def test_only_missing_request_maps_to_not_found():
    assert FailureKind.REQUEST_NOT_FOUND.status_code == 404
    assert {kind.status_code for kind in FailureKind if kind is not FailureKind.REQUEST_NOT_FOUND} == {400}
