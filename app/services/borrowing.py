"""Borrowing request lifecycle.

A request is created Waiting and moves exactly once, to Approved or Rejected.
Copies are reserved when the request is created (one per line, duplicates
included) and only a rejection hands them back; approval leaves the counters
alone. There is no return transition.

Each mutating call runs as one transaction on the session it was given: the
book counters and the request row are committed together or rolled back
together. Book rows are locked with ``SELECT ... FOR UPDATE`` before their
counter is read, and the decrement itself is a guarded ``UPDATE`` so two
callers racing for the last copy cannot both win. Every call writes before it
reads anything it decides on (the requestor row on create, the status on
decide), so on SQLite, where ``FOR UPDATE`` is a no-op, the database write
lock still serializes them.
"""

import logging
from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.models.models import BorrowingRequest, BorrowingStatus, RequestLine, Role, User
from app.services.inventory import InventoryLedger
from app.services.pagination import paginate
from app.services.quota import QuotaPolicy
from app.services.result import FailureKind, Result

logger = logging.getLogger("library")


class BorrowingWorkflow:

    def __init__(self, db: Session, admin_account_id: Optional[int] = None, clock: Clock = None,
                 quota: QuotaPolicy = None, inventory: InventoryLedger = None,
                 loan_days: int = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.admin_account_id = admin_account_id
        self.quota = quota or QuotaPolicy(db, clock=self.clock)
        self.inventory = inventory or InventoryLedger(db)
        self.loan_days = settings.loan_days if loan_days is None else loan_days

    # -----------------------------
    # Commands
    # -----------------------------
    def create_request(self, requestor_id: int, book_ids: Sequence[int]) -> Result[BorrowingRequest]:
        book_ids = list(book_ids)
        try:
            result = self._create_request(requestor_id, book_ids)
        except SQLAlchemyError:
            self.inventory.discard()
            logger.exception(f"Persisting borrowing request for user {requestor_id} failed")
            raise
        if not result.is_success:
            self.inventory.discard()
            logger.warning(f"Borrowing request for user {requestor_id} refused: {result.message}")
            return result
        self.inventory.persist()
        self.db.refresh(result.value)
        logger.info(f"Created borrowing request id={result.value.id} user={requestor_id} "
                    f"books={book_ids}")
        return result

    def _create_request(self, requestor_id: int, book_ids: list) -> Result[BorrowingRequest]:
        # Touch the requestor row before counting: the write opens the
        # transaction and takes the row lock on every backend (SQLite ignores
        # FOR UPDATE and defers BEGIN to the first write), so concurrent
        # creates of one user count their quota one after the other.
        touched = (
            self.db.query(User)
            .filter(User.id == requestor_id)
            .update({User.id: User.id}, synchronize_session=False)
        )
        if not touched:
            return Result.failure(FailureKind.USER_NOT_FOUND, "User not found")
        requestor = self.db.get(User, requestor_id)

        check = self.quota.validate_new_request(requestor.id, book_ids)
        if not check.is_success:
            return check

        for book_id in book_ids:
            book = self.inventory.get_by_id(book_id, lock=True)
            if book is None:
                return Result.failure(FailureKind.BOOK_NOT_FOUND, f"Book with ID {book_id} not found")
            if book.available_quantity <= 0 or not self.inventory.decrement(book):
                return Result.failure(FailureKind.BOOK_UNAVAILABLE,
                                      f"Book with ID {book_id} is not available for borrowing")

        approver = self._approver()
        if approver is None:
            return Result.failure(FailureKind.ADMIN_NOT_CONFIGURED, "Admin account not found")

        now = self.clock.now()
        request = BorrowingRequest(
            request_date=now,
            expiration_date=now + timedelta(days=self.loan_days),
            status=BorrowingStatus.WAITING,
            approver_id=approver.id,
            requestor_id=requestor.id,
            lines=[RequestLine(book_id=book_id) for book_id in book_ids],
        )
        self.db.add(request)
        self.db.flush()
        return Result.success(request)

    def _approver(self) -> Optional[User]:
        if self.admin_account_id is None:
            return None
        return self.db.query(User).filter(
            User.id == self.admin_account_id, User.role == Role.ADMIN
        ).first()

    def decide_request(self, request_id: int, decision: BorrowingStatus,
                       acting_user_id: int) -> Result[BorrowingRequest]:
        if not decision.is_terminal:
            raise ValueError(f"{decision.value} is not a decision")
        try:
            result = self._decide_request(request_id, decision, acting_user_id)
        except SQLAlchemyError:
            self.inventory.discard()
            logger.exception(f"Persisting decision on borrowing request {request_id} failed")
            raise
        if not result.is_success:
            self.inventory.discard()
            logger.warning(f"Decision on borrowing request {request_id} refused: {result.message}")
            return result
        self.inventory.persist()
        self.db.refresh(result.value)
        logger.info(f"Borrowing request id={request_id} {decision.value.lower()} by user {acting_user_id}")
        return result

    def _decide_request(self, request_id: int, decision: BorrowingStatus,
                        acting_user_id: int) -> Result[BorrowingRequest]:
        # Waiting -> decision as one guarded write: of two racing deciders only
        # one sees a changed row, so copies are never handed back twice
        moved = (
            self.db.query(BorrowingRequest)
            .filter(BorrowingRequest.id == request_id,
                    BorrowingRequest.status == BorrowingStatus.WAITING)
            .update({BorrowingRequest.status: decision,
                     BorrowingRequest.approver_id: acting_user_id},
                    synchronize_session=False)
        )
        request = (
            self.db.query(BorrowingRequest)
            .filter(BorrowingRequest.id == request_id)
            .execution_options(populate_existing=True)
            .first()
        )
        if request is None:
            return Result.failure(FailureKind.REQUEST_NOT_FOUND,
                                  f"Borrowing request with ID {request_id} not found")
        if not moved:
            return Result.failure(
                FailureKind.INVALID_TRANSITION,
                f"Cannot update status. The borrowing request is already {request.status.value}.")

        if decision is BorrowingStatus.REJECTED:
            # hand back exactly what creation reserved, one copy per line
            for line in request.lines:
                book = self.inventory.get_by_id(line.book_id, lock=True) if line.book_id else None
                if book is None:
                    return Result.failure(FailureKind.BOOK_NOT_FOUND,
                                          f"Book with ID {line.book_id} not found")
                self.inventory.increment(book)
        elif decision is BorrowingStatus.APPROVED:
            pass
        else:
            raise ValueError(f"Unhandled decision {decision!r}")

        self.db.flush()
        return Result.success(request)

    # -----------------------------
    # Queries
    # -----------------------------
    def _with_details(self):
        return self.db.query(BorrowingRequest).options(
            selectinload(BorrowingRequest.lines).selectinload(RequestLine.book),
            selectinload(BorrowingRequest.requestor),
        )

    def list_requests(self, page_index: int, page_size: int,
                      status: Optional[BorrowingStatus] = None) -> dict:
        query = self._with_details()
        if status is not None:
            query = query.filter(BorrowingRequest.status == status)
        query = query.order_by(BorrowingRequest.request_date.desc(), BorrowingRequest.id.desc())
        return paginate(query, page_index, page_size)

    def list_user_requests(self, user_id: int, page_index: int, page_size: int) -> Result[dict]:
        if self.db.get(User, user_id) is None:
            return Result.failure(FailureKind.USER_NOT_FOUND, "User not found")
        query = (
            self._with_details()
            .filter(BorrowingRequest.requestor_id == user_id)
            .order_by(BorrowingRequest.request_date.desc(), BorrowingRequest.id.desc())
        )
        return Result.success(paginate(query, page_index, page_size))

    def monthly_count(self, user_id: int) -> Result[int]:
        if self.db.get(User, user_id) is None:
            return Result.failure(FailureKind.USER_NOT_FOUND, "User not found")
        return Result.success(self.quota.count_active_requests_this_month(user_id))
