import enum
from datetime import datetime, timezone

from sqlalchemy import (Column, Integer, String, DateTime, Boolean, Float, ForeignKey, Enum,
                        CheckConstraint, Index)
from sqlalchemy.orm import relationship

from campus_library.core.database import Base


def utcnow() -> datetime:
    # naive UTC, matching what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    LIBRARIAN = "LIBRARIAN"
    STUDENT = "STUDENT"


STAFF_ROLES = (Role.ADMIN, Role.LIBRARIAN)


class BorrowingStatus(str, enum.Enum):
    OPEN = "OPEN"
    RETURNED = "RETURNED"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.STUDENT)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    borrowings = relationship("Borrowing", back_populates="user", order_by="Borrowing.borrowed_at.desc()")


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    isbn = Column(String, unique=True, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    available = Column(Boolean, nullable=False, default=True, index=True)
    cover_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    borrowings = relationship("Borrowing", back_populates="book", cascade="all, delete-orphan")


Index('ix_books_title_author', Book.title, Book.author)


class Borrowing(Base):
    __tablename__ = "borrowings"
    __table_args__ = (CheckConstraint("fine IS NULL OR fine >= 0", name="ck_borrowings_fine"),)
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    borrowed_at = Column(DateTime, nullable=False, default=utcnow)
    due_date = Column(DateTime, nullable=False, index=True)
    returned_at = Column(DateTime, nullable=True, index=True)
    fine = Column(Float, nullable=True)
    user = relationship("User", back_populates="borrowings")
    book = relationship("Book", back_populates="borrowings")

    @property
    def is_open(self) -> bool:
        return self.returned_at is None

    @property
    def status(self) -> BorrowingStatus:
        return BorrowingStatus.OPEN if self.is_open else BorrowingStatus.RETURNED

    def is_overdue(self, now: datetime = None) -> bool:
        return self.is_open and (now or utcnow()) > self.due_date

    @property
    def overdue(self) -> bool:
        return self.is_overdue()
