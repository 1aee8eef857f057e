import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.models import Book

logger = logging.getLogger("library")


class InventoryLedger:
    """
    Availability counters of books, mutated one copy at a time.

    The ledger only moves ``available_quantity``; deciding whether a move is
    allowed belongs to the borrowing workflow. Mutations are issued as
    server-side ``UPDATE`` statements inside the caller's transaction and only
    become visible to others on ``persist()``.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, book_id: int, lock: bool = False) -> Optional[Book]:
        """
        Load a book, optionally holding its row lock until the transaction ends.

        With ``lock=True`` the row is read with ``SELECT ... FOR UPDATE`` and the
        identity map is refreshed, so a book already loaded in this session
        reflects the latest committed counters.
        """
        query = self.db.query(Book).filter(Book.id == book_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return query.first()

    def decrement(self, book: Book) -> bool:
        """
        Take one copy out of availability.

        Returns False when no row was changed, i.e. the stored counter had
        already reached zero under a concurrent writer.
        """
        changed = (
            self.db.query(Book)
            .filter(Book.id == book.id, Book.available_quantity > 0)
            .update({Book.available_quantity: Book.available_quantity - 1},
                    synchronize_session=False)
        )
        self.db.expire(book, ["available_quantity"])
        if changed:
            logger.debug(f"Reserved one copy of book id={book.id}")
        return changed == 1

    def increment(self, book: Book) -> bool:
        """Return one copy to availability."""
        changed = (
            self.db.query(Book)
            .filter(Book.id == book.id)
            .update({Book.available_quantity: Book.available_quantity + 1},
                    synchronize_session=False)
        )
        self.db.expire(book, ["available_quantity"])
        if changed:
            logger.debug(f"Released one copy of book id={book.id}")
        return changed == 1

    def persist(self) -> None:
        self.db.commit()

    def discard(self) -> None:
        self.db.rollback()
