import enum

from sqlalchemy import (Column, Integer, String, Date, DateTime, Enum, ForeignKey, Index, Text,
                        CheckConstraint, Boolean)
from sqlalchemy.orm import relationship
from app.core.clock import SystemClock
from app.core.database import Base

_utcnow = SystemClock().now


class Role(str, enum.Enum):
    ADMIN = "Admin"
    USER = "User"


class BorrowingStatus(str, enum.Enum):
    WAITING = "Waiting"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not BorrowingStatus.WAITING


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    books = relationship("Book", back_populates="category")


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),
        CheckConstraint("available_quantity >= 0 AND available_quantity <= quantity",
                        name="ck_books_available_range"),
    )
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    isbn = Column(String, nullable=True, index=True)
    publish_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    available_quantity = Column(Integer, nullable=False, default=1)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow)
    category = relationship("Category", back_populates="books")
    request_lines = relationship("RequestLine", back_populates="book")

Index('ix_books_title_author', Book.title, Book.author)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.USER)
    joined_at = Column(DateTime, default=_utcnow)
    requests = relationship("BorrowingRequest", back_populates="requestor",
                            foreign_keys="BorrowingRequest.requestor_id")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class BorrowingRequest(Base):
    __tablename__ = "borrowing_requests"
    id = Column(Integer, primary_key=True, index=True)
    request_date = Column(DateTime, nullable=False, index=True)
    expiration_date = Column(DateTime, nullable=False)
    status = Column(Enum(BorrowingStatus), nullable=False, default=BorrowingStatus.WAITING, index=True)
    requestor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requestor = relationship("User", foreign_keys=[requestor_id], back_populates="requests")
    approver = relationship("User", foreign_keys=[approver_id])
    lines = relationship("RequestLine", back_populates="request", cascade="all, delete-orphan",
                         order_by="RequestLine.id")

Index('ix_borrowing_requests_requestor_date', BorrowingRequest.requestor_id, BorrowingRequest.request_date)


class RequestLine(Base):
    __tablename__ = "request_lines"
    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("borrowing_requests.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True, index=True)
    request = relationship("BorrowingRequest", back_populates="lines")
    book = relationship("Book", back_populates="request_lines")

    @property
    def book_title(self):
        return self.book.title if self.book is not None else None


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    id = Column(Integer, primary_key=True, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    is_revoked = Column(Boolean, nullable=False, default=False)
    is_used = Column(Boolean, nullable=False, default=False)
    user = relationship("User", back_populates="refresh_tokens")
