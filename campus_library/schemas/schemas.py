import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator, model_validator

from campus_library.models.models import Role, BorrowingStatus

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def _normalize_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError('invalid email format')
    return v


def _check_password(v: Optional[str]) -> Optional[str]:
    if v is not None and len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'password must be at least {MIN_PASSWORD_LENGTH} characters long')
    return v


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


def _strip_required(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError('must not be empty')
    return v


# Books

class BookBase(BaseModel):
    title: constr(strip_whitespace=True, min_length=1)
    author: constr(strip_whitespace=True, min_length=1)
    isbn: constr(strip_whitespace=True, min_length=1)
    category: constr(strip_whitespace=True, min_length=1)
    cover_url: Optional[str] = None


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""
    model_config = ConfigDict(extra='forbid')

    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    cover_url: Optional[str] = None

    @field_validator('title', 'author', 'isbn', 'category')
    def ensure_not_blank(cls, v):
        return _strip_required(v)


class BookOut(BookBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    available: bool
    created_at: datetime


class ImportReport(BaseModel):
    created: int
    updated: int
    errors: List[dict]


# Users

class UserBase(BaseModel):
    name: constr(strip_whitespace=True, min_length=1)
    email: str

    @field_validator('email')
    def ensure_email(cls, v):
        return _normalize_email(v)


class RegisterIn(UserBase):
    password: str

    @field_validator('password')
    def ensure_password(cls, v):
        return _check_password(v)


class UserCreate(RegisterIn):
    role: Role = Role.STUDENT


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    password: Optional[str] = None

    @field_validator('name')
    def ensure_name(cls, v):
        return _strip_required(v)

    @field_validator('email')
    def ensure_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    def ensure_password(cls, v):
        return _check_password(v)


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator('name')
    def ensure_name(cls, v):
        return _strip_required(v)

    @field_validator('email')
    def ensure_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    def ensure_password(cls, v):
        return _check_password(v)


class LoginIn(BaseModel):
    email: str
    password: str

    @field_validator('email')
    def lower_email(cls, v):
        return v.strip().lower()


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime
    updated_at: Optional[datetime] = None


class IdentityOut(BaseModel):
    id: int
    name: str
    email: str
    role: Role


# Borrowings

class BookRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    isbn: str


class UserRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class BorrowingCreate(BaseModel):
    book_id: int
    # defaults to the caller
    user_id: Optional[int] = None
    borrowed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None

    @field_validator('borrowed_at', 'due_date')
    def to_naive_utc(cls, v):
        return _naive_utc(v)

    @model_validator(mode='after')
    def check_dates(self):
        if self.borrowed_at and self.due_date and self.due_date <= self.borrowed_at:
            raise ValueError('due_date must be after borrowed_at')
        return self


class BorrowingUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    due_date: datetime

    @field_validator('due_date')
    def to_naive_utc(cls, v):
        return _naive_utc(v)


class BorrowingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: int
    borrowed_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None
    fine: Optional[float] = Field(default=None, ge=0)
    status: BorrowingStatus
    overdue: bool


class BorrowingDetail(BorrowingOut):
    user: UserRef
    book: BookRef


class UserDetail(UserOut):
    borrowings: List[BorrowingDetail] = []


# Dashboards

class Activity(BaseModel):
    id: int
    description: str
    created_at: datetime


class AdminDashboard(BaseModel):
    total_users: int
    total_books: int
    books_borrowed: int
    books_available: int
    recent_activities: List[Activity]


class LibrarianDashboard(BaseModel):
    total_books: int
    books_borrowed: int
    books_available: int
    overdue_borrowings: int
    recent_activities: List[Activity]


class StudentDashboard(BaseModel):
    open_borrowings: List[BorrowingDetail]
    overdue_count: int
    total_fines: float
    accruing_fines: float
