import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from campus_library.core.database import get_db
from campus_library.core.errors import ConflictError, UnauthorizedError
from campus_library.core.security import (Identity, get_identity, hash_password, verify_password,
                                          login_session, logout_session)
from campus_library.models import models
from campus_library.schemas import schemas

logger = logging.getLogger("elibrary.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=schemas.UserOut, status_code=201)
def register(user_in: schemas.RegisterIn, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.email == user_in.email).first()
    if existing:
        raise ConflictError("Email already registered")
    user = models.User(name=user_in.name, email=user_in.email,
                       password_hash=hash_password(user_in.password), role=models.Role.STUDENT)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user id={user.id} email={user.email}")
    return user


@router.post("/login", response_model=schemas.IdentityOut)
def login(credentials: schemas.LoginIn, request: Request, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == credentials.email).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning("Failed login attempt for email=%s", credentials.email)
        raise UnauthorizedError("Invalid email or password")
    identity = login_session(request, user)
    logger.info(f"User {user.id} ({identity.role.value}) logged in")
    return asdict(identity)


@router.post("/logout", status_code=204)
def logout(request: Request):
    logout_session(request)
    return Response(status_code=204)


@router.get("/session", response_model=schemas.IdentityOut)
def current_session(identity: Identity = Depends(get_identity)):
    return asdict(identity)
