from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from campus_library.core.config import BorrowingPolicy, get_policy
from campus_library.core.database import get_db
from campus_library.core.security import Identity, get_identity, require_staff
from campus_library.models import models
from campus_library.schemas import schemas
from campus_library.services import borrowing as workflow

router = APIRouter(prefix="/borrowings", tags=["borrowings"])


@router.get("/", response_model=List[schemas.BorrowingDetail])
def list_borrowings(status: Optional[models.BorrowingStatus] = None,
                    overdue: Optional[bool] = None,
                    user_id: Optional[int] = None,
                    skip: int = Query(0, ge=0), limit: int = Query(50, ge=1, le=500),
                    identity: Identity = Depends(get_identity),
                    db: Session = Depends(get_db)):
    return workflow.list_borrowings(db, identity, status=status, overdue=overdue,
                                    user_id=user_id, skip=skip, limit=limit)


@router.post("/", response_model=schemas.BorrowingDetail, status_code=201)
def create_borrowing(borrowing_in: schemas.BorrowingCreate,
                     identity: Identity = Depends(get_identity),
                     policy: BorrowingPolicy = Depends(get_policy),
                     db: Session = Depends(get_db)):
    return workflow.create_borrowing(db, identity, borrowing_in.book_id,
                                     user_id=borrowing_in.user_id,
                                     borrowed_at=borrowing_in.borrowed_at,
                                     due_date=borrowing_in.due_date,
                                     policy=policy)


@router.get("/{borrowing_id}", response_model=schemas.BorrowingDetail)
def read_borrowing(borrowing_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return workflow.get_borrowing(db, identity, borrowing_id)


@router.api_route("/{borrowing_id}/return", methods=["POST", "PUT"], response_model=schemas.BorrowingDetail)
def return_borrowing(borrowing_id: int,
                     identity: Identity = Depends(get_identity),
                     policy: BorrowingPolicy = Depends(get_policy),
                     db: Session = Depends(get_db)):
    return workflow.return_borrowing(db, identity, borrowing_id, policy=policy)


@router.patch("/{borrowing_id}", response_model=schemas.BorrowingDetail)
def update_borrowing(borrowing_id: int, changes: schemas.BorrowingUpdate,
                     identity: Identity = Depends(require_staff),
                     db: Session = Depends(get_db)):
    return workflow.update_borrowing(db, identity, borrowing_id, changes.due_date)
