import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from sqlalchemy import func

from app.core.database import get_db
from app.core.security import get_current_user, hash_password, require_role
from app.models import models
from app.schemas import schemas
from app.services.pagination import paginate

logger = logging.getLogger("library")

router = APIRouter()

admin_only = require_role(models.Role.ADMIN)


# -----------------------------
# Categories
# -----------------------------
@router.get("/categories/", response_model=schemas.Page[schemas.CategoryOut])
def list_categories(page_index: int = 1, page_size: int = 10, db: Session = Depends(get_db)):
    query = db.query(models.Category).order_by(models.Category.name)
    return paginate(query, page_index, page_size)


@router.get("/categories/{category_id}", response_model=schemas.CategoryOut)
def read_category(category_id: int, db: Session = Depends(get_db)):
    category = db.query(models.Category).filter(models.Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.post("/categories/", response_model=schemas.CategoryOut)
def create_category(category_in: schemas.CategoryCreate, db: Session = Depends(get_db),
                    _: models.User = Depends(admin_only)):
    category = models.Category(name=category_in.name.strip(), description=category_in.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Created category id={category.id} name={category.name}")
    return category


@router.put("/categories/{category_id}", response_model=schemas.CategoryOut)
def update_category(category_id: int, category_in: schemas.CategoryCreate, db: Session = Depends(get_db),
                    _: models.User = Depends(admin_only)):
    category = db.query(models.Category).filter(models.Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    category.name = category_in.name.strip()
    category.description = category_in.description
    db.commit()
    db.refresh(category)
    logger.info(f"Updated category id={category.id}")
    return category


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db), _: models.User = Depends(admin_only)):
    category = db.query(models.Category).filter(models.Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    books = db.query(models.Book).filter(models.Book.category_id == category.id).count()
    if books > 0:
        raise HTTPException(status_code=400, detail="Cannot delete category with books")
    db.delete(category)
    db.commit()
    logger.info(f"Deleted category id={category_id}")
    return {"ok": True}


# -----------------------------
# Books
# -----------------------------
def _check_book_input(book_in: schemas.BookBase, db: Session):
    category = db.query(models.Category).filter(models.Category.id == book_in.category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    if book_in.publish_date and book_in.publish_date > date.today():
        raise HTTPException(status_code=400, detail="Publish date cannot be in the future")


@router.get("/books/", response_model=schemas.Page[schemas.BookOut])
def list_books(title: Optional[str] = Query(None, description="search by title"),
               category_id: Optional[int] = None,
               page_index: int = 1, page_size: int = 10,
               db: Session = Depends(get_db)):
    query = db.query(models.Book)
    if title:
        query = query.filter(models.Book.title.ilike(f"%{title}%"))
    if category_id is not None:
        query = query.filter(models.Book.category_id == category_id)
    query = query.order_by(models.Book.publish_date.desc(), models.Book.id)
    return paginate(query, page_index, page_size)


@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.post("/books/", response_model=schemas.BookOut)
def create_book(book_in: schemas.BookCreate, db: Session = Depends(get_db), _: models.User = Depends(admin_only)):
    _check_book_input(book_in, db)
    book = models.Book(
        title=book_in.title.strip(),
        author=book_in.author.strip(),
        isbn=book_in.isbn,
        publish_date=book_in.publish_date,
        description=book_in.description,
        quantity=book_in.quantity,
        available_quantity=book_in.quantity,
        category_id=book_in.category_id,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info(f"Created book id={book.id} title={book.title}")
    return book


@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate, db: Session = Depends(get_db),
                _: models.User = Depends(admin_only)):
    book = db.query(models.Book).filter(models.Book.id == book_id).with_for_update().first()
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    _check_book_input(book_upd, db)
    # copies reserved or on loan stay out of availability whatever the new total
    on_loan = book.quantity - book.available_quantity
    if book_upd.quantity < on_loan:
        raise HTTPException(status_code=400, detail=f"Quantity cannot be less than the {on_loan} copies borrowed")
    book.available_quantity = book_upd.quantity - on_loan
    book.quantity = book_upd.quantity
    book.title = book_upd.title.strip()
    book.author = book_upd.author.strip()
    book.isbn = book_upd.isbn
    book.publish_date = book_upd.publish_date
    book.description = book_upd.description
    book.category_id = book_upd.category_id
    db.commit()
    db.refresh(book)
    logger.info(f"Updated book id={book.id}")
    return book


@router.delete("/books/{book_id}")
def delete_book(book_id: int, db: Session = Depends(get_db), _: models.User = Depends(admin_only)):
    book = db.query(models.Book).filter(models.Book.id == book_id).with_for_update().first()
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    # prevent deletion while any copy is reserved or on loan
    if book.quantity != book.available_quantity:
        raise HTTPException(status_code=400, detail="Cannot delete book when borrowing")
    db.delete(book)
    db.commit()
    logger.info(f"Deleted book id={book_id}")
    return {"ok": True}


# -----------------------------
# Users
# -----------------------------
@router.post("/users/", response_model=schemas.UserOut)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.username == user_in.username).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username already registered")
    if user_in.email and db.query(models.User).filter(models.User.email == user_in.email.strip()).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    user = models.User(
        username=user_in.username.strip(),
        name=user_in.name.strip(),
        email=user_in.email.strip() if user_in.email else None,
        password_hash=hash_password(user_in.password),
        role=models.Role.USER,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user id={user.id} username={user.username}")
    return user


@router.get("/users/me", response_model=schemas.UserOut)
def read_current_user(current_user: models.User = Depends(get_current_user)):
    return current_user


# -----------------------------
# Statistics
# -----------------------------
@router.get("/statistics", response_model=schemas.StatisticsOut)
def statistics(db: Session = Depends(get_db), _: models.User = Depends(admin_only)):
    return {
        "total_books": db.query(func.count(models.Book.id)).scalar(),
        "total_categories": db.query(func.count(models.Category.id)).scalar(),
        "total_users": db.query(func.count(models.User.id)).filter(models.User.role == models.Role.USER).scalar(),
    }
