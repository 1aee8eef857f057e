from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar

from app.models.models import BorrowingStatus, Role

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    page_index: int
    page_size: int
    total_items: int
    total_pages: int
    items: List[T]


class CategoryBase(BaseModel):
    name: constr(min_length=1)
    description: Optional[str] = None


class CategoryCreate(CategoryBase):
    pass


class CategoryOut(CategoryBase):
    model_config = ConfigDict(from_attributes=True)
    id: int


class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    isbn: Optional[str] = None
    publish_date: Optional[date] = None
    description: Optional[str] = None
    quantity: int = Field(default=1, ge=0)
    category_id: int


class BookCreate(BookBase):
    pass


class BookUpdate(BookBase):
    pass


class BookOut(BookBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    available_quantity: int
    created_at: datetime


class UserBase(BaseModel):
    username: constr(min_length=3)
    name: constr(min_length=1)
    email: Optional[str] = None


class UserCreate(UserBase):
    password: constr(min_length=6)

    @field_validator('email')
    @classmethod
    def check_email_format(cls, v):
        if v is not None and "@" not in v:
            raise ValueError('invalid email format')
        return v


class UserOut(UserBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    role: Role
    joined_at: datetime


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: Optional[str] = None


class BorrowingCreate(BaseModel):
    book_ids: List[int]


class RequestLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    book_id: Optional[int]
    book_title: Optional[str] = None


class RequestBorrowingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    request_date: datetime
    expiration_date: datetime
    status: BorrowingStatus
    approver_id: int
    books: List[RequestLineOut] = Field(validation_alias="lines")


class BorrowingOut(RequestBorrowingOut):
    requestor: Optional[UserSummary] = None


class StatisticsOut(BaseModel):
    total_books: int
    total_categories: int
    total_users: int


class LoginRequest(BaseModel):
    username: constr(min_length=1)
    password: constr(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: constr(min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
