import os

os.environ.setdefault("LIBRARY_DB", "sqlite://")

import base64
from datetime import datetime, date

import bcrypt
import pytest
from fastapi.testclient import TestClient

from app.core.clock import FixedClock
from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.main import app
from app.models.models import Book, Category, Role, User
from app.services.borrowing import BorrowingWorkflow

PASSWORD = "secret123"
# low work factor keeps every authenticated test request fast
PASSWORD_HASH = bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


def auth(username, password=PASSWORD):
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 5, 14, 10, 30))


@pytest.fixture
def make_user(db):
    def _make(username, role=Role.USER):
        user = User(username=username, name=username.title(), email=f"{username}@example.com",
                    password_hash=PASSWORD_HASH, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", Role.ADMIN)


@pytest.fixture
def member(make_user):
    return make_user("alice")


@pytest.fixture
def category(db):
    category = Category(name="Fiction", description="Novels")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def make_book(db, category):
    def _make(title="Book", quantity=3, available=None):
        book = Book(title=title, author="Author", publish_date=date(2020, 1, 1), quantity=quantity,
                    available_quantity=quantity if available is None else available,
                    category_id=category.id)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture
def workflow(db, admin, clock):
    return BorrowingWorkflow(db, admin_account_id=admin.id, clock=clock)


@pytest.fixture
def client(db, admin):
    previous = settings.admin_account_id
    settings.admin_account_id = admin.id
    try:
        yield TestClient(app)
    finally:
        settings.admin_account_id = previous
