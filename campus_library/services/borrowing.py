"""Borrowing lifecycle: lend a book, take it back, charge for lateness.

A borrowing is OPEN while ``returned_at`` is null and RETURNED afterwards;
RETURNED is terminal. A book is available exactly when it has no OPEN
borrowing. Both transitions flip the book's ``available`` flag with a
conditional UPDATE inside the same transaction as the borrowing change, so
two racing requests cannot both win.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from campus_library.core.config import BorrowingPolicy, DEFAULT_POLICY
from campus_library.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from campus_library.core.security import Identity
from campus_library.models import models
from campus_library.models.models import utcnow

logger = logging.getLogger("elibrary.borrowing")

ONE_DAY = timedelta(days=1)


def compute_fine(due_date: datetime, returned_at: datetime, rate: float) -> float:
    """Fine for a return at ``returned_at``: every started day late costs ``rate``."""
    if returned_at <= due_date:
        return 0.0
    days, remainder = divmod(returned_at - due_date, ONE_DAY)
    if remainder:
        days += 1
    return days * rate


def _can_touch(identity: Identity, borrowing: models.Borrowing) -> bool:
    return identity.is_staff or borrowing.user_id == identity.id


def get_borrowing(db: Session, identity: Identity, borrowing_id: int) -> models.Borrowing:
    borrowing = db.query(models.Borrowing).filter(models.Borrowing.id == borrowing_id).first()
    if not borrowing:
        raise NotFoundError("Borrowing not found")
    if not _can_touch(identity, borrowing):
        raise ForbiddenError("Forbidden: not your borrowing")
    return borrowing


def list_borrowings(db: Session, identity: Identity,
                    status: Optional[models.BorrowingStatus] = None,
                    overdue: Optional[bool] = None,
                    user_id: Optional[int] = None,
                    skip: int = 0, limit: int = 50,
                    now: Optional[datetime] = None) -> List[models.Borrowing]:
    now = now or utcnow()
    query = db.query(models.Borrowing)
    if not identity.is_staff:
        query = query.filter(models.Borrowing.user_id == identity.id)
    elif user_id is not None:
        query = query.filter(models.Borrowing.user_id == user_id)
    if status == models.BorrowingStatus.OPEN:
        query = query.filter(models.Borrowing.returned_at.is_(None))
    elif status == models.BorrowingStatus.RETURNED:
        query = query.filter(models.Borrowing.returned_at.isnot(None))
    if overdue is True:
        query = query.filter(models.Borrowing.returned_at.is_(None), models.Borrowing.due_date < now)
    elif overdue is False:
        query = query.filter((models.Borrowing.returned_at.isnot(None)) | (models.Borrowing.due_date >= now))
    query = query.order_by(models.Borrowing.borrowed_at.desc(), models.Borrowing.id.desc())
    return query.offset(skip).limit(limit).all()


def create_borrowing(db: Session, identity: Identity, book_id: int,
                     user_id: Optional[int] = None,
                     borrowed_at: Optional[datetime] = None,
                     due_date: Optional[datetime] = None,
                     policy: BorrowingPolicy = DEFAULT_POLICY) -> models.Borrowing:
    if user_id is None:
        user_id = identity.id
    if not identity.is_staff and user_id != identity.id:
        raise ForbiddenError("Forbidden: students may only borrow for themselves")
    if not identity.is_staff and (borrowed_at is not None or due_date is not None):
        raise ForbiddenError("Forbidden: only staff may set borrowing dates")

    borrowed_at = borrowed_at or utcnow()
    due_date = due_date or borrowed_at + timedelta(days=policy.loan_period_days)
    if due_date <= borrowed_at:
        raise ValidationError("Due date must be after the borrow date")

    book = db.query(models.Book).filter(models.Book.id == book_id).with_for_update().first()
    if not book:
        raise NotFoundError("Book not found")
    if not book.available:
        raise ConflictError("Book is currently not available")
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    try:
        # compare-and-set on the flag; a concurrent borrower leaves zero rows to update
        claimed = db.query(models.Book) \
            .filter(models.Book.id == book_id, models.Book.available.is_(True)) \
            .update({models.Book.available: False}, synchronize_session=False)
        if claimed != 1:
            raise ConflictError("Book is currently not available")
        borrowing = models.Borrowing(user_id=user.id, book_id=book.id,
                                     borrowed_at=borrowed_at, due_date=due_date)
        db.add(borrowing)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(borrowing)
    logger.info(f"User {user.id} borrowed book {book.id} borrowing {borrowing.id} due {due_date.isoformat()}")
    return borrowing


def return_borrowing(db: Session, identity: Identity, borrowing_id: int,
                     now: Optional[datetime] = None,
                     policy: BorrowingPolicy = DEFAULT_POLICY) -> models.Borrowing:
    borrowing = get_borrowing(db, identity, borrowing_id)
    if not borrowing.is_open:
        raise ValidationError("Book already returned")

    returned_at = now or utcnow()
    fine = compute_fine(borrowing.due_date, returned_at, policy.fine_per_day)
    try:
        closed = db.query(models.Borrowing) \
            .filter(models.Borrowing.id == borrowing.id, models.Borrowing.returned_at.is_(None)) \
            .update({models.Borrowing.returned_at: returned_at, models.Borrowing.fine: fine},
                    synchronize_session=False)
        if closed != 1:
            raise ValidationError("Book already returned")
        db.query(models.Book).filter(models.Book.id == borrowing.book_id) \
            .update({models.Book.available: True}, synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(borrowing)
    logger.info(f"Borrowing {borrowing.id} returned, fine={fine}")
    return borrowing


def update_borrowing(db: Session, identity: Identity, borrowing_id: int,
                     due_date: datetime) -> models.Borrowing:
    borrowing = get_borrowing(db, identity, borrowing_id)
    if not identity.is_staff:
        raise ForbiddenError("Forbidden: only staff may change a due date")
    if not borrowing.is_open:
        raise ValidationError("Returned borrowings cannot be changed")
    if due_date <= borrowing.borrowed_at:
        raise ValidationError("Due date must be after the borrow date")
    try:
        moved = db.query(models.Borrowing) \
            .filter(models.Borrowing.id == borrowing.id, models.Borrowing.returned_at.is_(None)) \
            .update({models.Borrowing.due_date: due_date}, synchronize_session=False)
        if moved != 1:
            raise ValidationError("Returned borrowings cannot be changed")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(borrowing)
    logger.info(f"Borrowing {borrowing.id} due date moved to {due_date.isoformat()}")
    return borrowing


def accruing_fine(borrowing: models.Borrowing, now: Optional[datetime] = None,
                  policy: BorrowingPolicy = DEFAULT_POLICY) -> float:
    """Fine an open borrowing would be charged if returned at ``now``."""
    if not borrowing.is_open:
        return 0.0
    return compute_fine(borrowing.due_date, now or utcnow(), policy.fine_per_day)
