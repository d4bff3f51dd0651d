from fastapi import APIRouter

from campus_library.api import auth, books, borrowings, dashboard, users

router = APIRouter()
router.include_router(auth.router)
router.include_router(books.router)
router.include_router(users.router)
router.include_router(borrowings.router)
router.include_router(dashboard.router)
