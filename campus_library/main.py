import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from campus_library.core.config import SECRET_KEY, SESSION_MAX_AGE, configure_logging
from campus_library.core.database import Base, engine
from campus_library.core.errors import register_error_handlers
from campus_library.api import routes
from campus_library.models.models import utcnow

configure_logging()
logger = logging.getLogger("elibrary")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables (if not present)...")
    Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Campus Library Management System", lifespan=lifespan)
    app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY, max_age=SESSION_MAX_AGE,
                       same_site="lax")
    register_error_handlers(app)
    app.include_router(routes.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "time": utcnow().isoformat()}

    return app


app = create_app()
