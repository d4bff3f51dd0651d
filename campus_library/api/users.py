import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from campus_library.api.export import csv_response
from campus_library.core.database import get_db
from campus_library.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from campus_library.core.security import Identity, get_identity, require_admin, hash_password
from campus_library.models import models
from campus_library.schemas import schemas

logger = logging.getLogger("elibrary.users")

router = APIRouter(prefix="/users", tags=["users"])

EXPORT_COLUMNS = ['id', 'name', 'email', 'role', 'created_at', 'updated_at']


def _get_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _apply_changes(db: Session, user: models.User, data: dict) -> None:
    if not data:
        raise ValidationError("No valid fields provided for update")
    for field in ('name', 'email', 'role', 'password'):
        if field in data and data[field] is None:
            raise ValidationError(f"{field} cannot be null")
    if 'email' in data and data['email'] != user.email:
        clash = db.query(models.User) \
            .filter(models.User.email == data['email'], models.User.id != user.id).first()
        if clash:
            raise ConflictError("Email address is already in use by another account")
    if 'password' in data:
        user.password_hash = hash_password(data.pop('password'))
    for k, v in data.items():
        setattr(user, k, v)


@router.get("/", response_model=List[schemas.UserOut])
def list_users(role: Optional[models.Role] = None,
               skip: int = Query(0, ge=0), limit: int = Query(50, ge=1, le=500),
               identity: Identity = Depends(require_admin),
               db: Session = Depends(get_db)):
    query = db.query(models.User)
    if role is not None:
        query = query.filter(models.User.role == role)
    return query.order_by(models.User.name).offset(skip).limit(limit).all()


@router.post("/", response_model=schemas.UserOut, status_code=201)
def create_user(user_in: schemas.UserCreate,
                identity: Identity = Depends(require_admin),
                db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.email == user_in.email).first()
    if existing:
        raise ConflictError("Email already registered")
    user = models.User(name=user_in.name, email=user_in.email,
                       password_hash=hash_password(user_in.password), role=user_in.role)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user id={user.id} email={user.email} role={user.role.value}")
    return user


@router.get("/export/csv")
def export_users_csv(identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    users = db.query(models.User).order_by(models.User.name).all()
    rows = ([u.id, u.name, u.email, u.role.value, u.created_at, u.updated_at] for u in users)
    return csv_response(EXPORT_COLUMNS, rows, 'users.csv')


@router.get("/profile", response_model=schemas.UserOut)
def read_profile(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return _get_user(db, identity.id)


@router.patch("/profile", response_model=schemas.UserOut)
def update_profile(changes: schemas.ProfileUpdate,
                   identity: Identity = Depends(get_identity),
                   db: Session = Depends(get_db)):
    user = _get_user(db, identity.id)
    data = changes.model_dump(exclude_unset=True)
    _apply_changes(db, user, data)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} updated own profile")
    return user


@router.get("/{user_id}", response_model=schemas.UserDetail)
def read_user(user_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return _get_user(db, user_id)


@router.api_route("/{user_id}", methods=["PUT", "PATCH"], response_model=schemas.UserOut)
def update_user(user_id: int, changes: schemas.UserUpdate,
                identity: Identity = Depends(require_admin),
                db: Session = Depends(get_db)):
    user = _get_user(db, user_id)
    data = changes.model_dump(exclude_unset=True)
    _apply_changes(db, user, data)
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {identity.id} updated user id={user.id}")
    return user


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    if user_id == identity.id:
        raise ForbiddenError("Administrators cannot delete their own account")
    user = _get_user(db, user_id)
    history = db.query(models.Borrowing).filter(models.Borrowing.user_id == user.id).count()
    if history > 0:
        raise ConflictError("Cannot delete user: the account has borrowing records")
    db.delete(user)
    db.commit()
    logger.info(f"Admin {identity.id} deleted user id={user_id}")
    return Response(status_code=204)
