import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from campus_library.core.database import Base, get_db, make_engine
from campus_library.core.security import Identity, hash_password
from campus_library.main import app
from campus_library.models import models

PASSWORD = "secret123"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'library_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_db(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def make_user(db):
    def _make(name="Student", email=None, role=models.Role.STUDENT):
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        user = models.User(name=name, email=email, password_hash=hash_password(PASSWORD), role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_book(db):
    counter = {"n": 0}

    def _make(title="Clean Code", author="Robert C. Martin", category="Programming", isbn=None, available=True):
        counter["n"] += 1
        book = models.Book(title=title, author=author, category=category,
                           isbn=isbn or f"978000000{counter['n']:04d}", available=available)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture
def identity_of():
    return Identity.from_user


@pytest.fixture
def login():
    """Return a TestClient holding a session for the given user."""
    clients = []

    def _login(user):
        client = TestClient(app)
        r = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert r.status_code == 200, r.text
        clients.append(client)
        return client

    yield _login
    for c in clients:
        c.close()


@pytest.fixture
def anon():
    client = TestClient(app)
    yield client
    client.close()
