from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from campus_library.core.config import BorrowingPolicy, get_policy
from campus_library.core.database import get_db
from campus_library.core.security import Identity, get_identity, require_admin, require_staff
from campus_library.models import models
from campus_library.models.models import utcnow
from campus_library.schemas import schemas
from campus_library.services import borrowing as workflow

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def recent_activities(db: Session, limit: int) -> List[dict]:
    recent = db.query(models.Borrowing) \
        .options(joinedload(models.Borrowing.user), joinedload(models.Borrowing.book)) \
        .order_by(models.Borrowing.borrowed_at.desc(), models.Borrowing.id.desc()) \
        .limit(limit).all()
    return [{'id': b.id,
             'description': f'{b.user.name} borrowed "{b.book.title}"',
             'created_at': b.borrowed_at} for b in recent]


def _book_counts(db: Session):
    total_books = db.query(func.count(models.Book.id)).scalar()
    available = db.query(func.count(models.Book.id)).filter(models.Book.available.is_(True)).scalar()
    return total_books, available


@router.get("/admin", response_model=schemas.AdminDashboard)
def admin_dashboard(identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    total_books, available = _book_counts(db)
    return {
        'total_users': db.query(func.count(models.User.id)).scalar(),
        'total_books': total_books,
        'books_borrowed': total_books - available,
        'books_available': available,
        'recent_activities': recent_activities(db, 5),
    }


@router.get("/librarian", response_model=schemas.LibrarianDashboard)
def librarian_dashboard(identity: Identity = Depends(require_staff), db: Session = Depends(get_db)):
    total_books, available = _book_counts(db)
    open_q = db.query(func.count(models.Borrowing.id)).filter(models.Borrowing.returned_at.is_(None))
    return {
        'total_books': total_books,
        'books_borrowed': open_q.scalar(),
        'books_available': available,
        'overdue_borrowings': open_q.filter(models.Borrowing.due_date < utcnow()).scalar(),
        'recent_activities': recent_activities(db, 10),
    }


@router.get("/student", response_model=schemas.StudentDashboard)
def student_dashboard(identity: Identity = Depends(get_identity),
                      policy: BorrowingPolicy = Depends(get_policy),
                      db: Session = Depends(get_db)):
    now: datetime = utcnow()
    open_borrowings = db.query(models.Borrowing) \
        .filter(models.Borrowing.user_id == identity.id, models.Borrowing.returned_at.is_(None)) \
        .order_by(models.Borrowing.due_date).all()
    total_fines = db.query(func.coalesce(func.sum(models.Borrowing.fine), 0.0)) \
        .filter(models.Borrowing.user_id == identity.id).scalar()
    return {
        'open_borrowings': open_borrowings,
        'overdue_count': sum(1 for b in open_borrowings if b.is_overdue(now)),
        'total_fines': float(total_fines),
        'accruing_fines': sum(workflow.accruing_fine(b, now, policy) for b in open_borrowings),
    }
