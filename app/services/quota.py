import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.models.models import BorrowingRequest, BorrowingStatus
from app.services.result import FailureKind, Result

logger = logging.getLogger("library")


def month_bounds(moment: datetime):
    """First instant of the month containing ``moment`` and of the month after."""
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class QuotaPolicy:
    """
    Per-user limits on borrowing requests.

    A user may hold at most ``max_requests_per_month`` requests that are not
    Rejected with a request date inside the current calendar month (UTC), and a
    single request carries between one and ``max_books_per_request`` books.
    Rejected requests never count, so rejecting one frees its slot at once.
    """

    def __init__(self, db: Session, clock: Clock = None,
                 max_requests_per_month: int = None, max_books_per_request: int = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.max_requests_per_month = (settings.max_requests_per_month
                                       if max_requests_per_month is None else max_requests_per_month)
        self.max_books_per_request = (settings.max_books_per_request
                                      if max_books_per_request is None else max_books_per_request)

    def count_active_requests_this_month(self, user_id: int) -> int:
        start, end = month_bounds(self.clock.now())
        return self.db.query(func.count(BorrowingRequest.id)).filter(
            BorrowingRequest.requestor_id == user_id,
            BorrowingRequest.status != BorrowingStatus.REJECTED,
            BorrowingRequest.request_date >= start,
            BorrowingRequest.request_date < end,
        ).scalar() or 0

    def validate_new_request(self, user_id: int, book_ids: Sequence[int]) -> Result[None]:
        # quota, then upper bound, then lower bound; the first failure wins
        if self.count_active_requests_this_month(user_id) >= self.max_requests_per_month:
            logger.warning(f"User {user_id} reached the monthly borrowing quota")
            return Result.failure(
                FailureKind.QUOTA_EXCEEDED,
                f"You have reached the maximum limit of {self.max_requests_per_month} "
                f"borrowing requests per month")
        if len(book_ids) > self.max_books_per_request:
            return Result.failure(
                FailureKind.TOO_MANY_BOOKS,
                f"You can borrow a maximum of {self.max_books_per_request} books per request")
        if len(book_ids) == 0:
            return Result.failure(FailureKind.NO_BOOKS, "You must specify at least one book to borrow")
        return Result.success()
