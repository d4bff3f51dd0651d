"""Small maintenance commands: ``python -m campus_library.cli --initdb --seed``."""
import argparse
import logging

from campus_library.core.config import configure_logging
from campus_library.core.database import Base, SessionLocal, engine
from campus_library.core.security import hash_password
from campus_library.models import models

logger = logging.getLogger("elibrary.cli")

SEED_USERS = [
    ("Admin User", "admin@example.com", "admin123", models.Role.ADMIN),
    ("Librarian User", "librarian@example.com", "librarian123", models.Role.LIBRARIAN),
    ("Student User", "student@example.com", "student123", models.Role.STUDENT),
]

SEED_BOOKS = [
    ("The Great Gatsby", "F. Scott Fitzgerald", "9780743273565", "Fiction"),
    ("1984", "George Orwell", "9780451524935", "Dystopian"),
    ("To Kill a Mockingbird", "Harper Lee", "9780060935467", "Fiction"),
    ("Clean Code", "Robert C. Martin", "9780132350884", "Programming"),
    ("Designing Data-Intensive Applications", "Martin Kleppmann", "9781449373320", "Programming"),
]


def seed(db) -> None:
    # idempotent: existing emails and ISBNs are skipped
    for name, email, password, role in SEED_USERS:
        if not db.query(models.User).filter(models.User.email == email).first():
            db.add(models.User(name=name, email=email, password_hash=hash_password(password), role=role))
    for title, author, isbn, category in SEED_BOOKS:
        if not db.query(models.Book).filter(models.Book.isbn == isbn).first():
            db.add(models.Book(title=title, author=author, isbn=isbn, category=category, available=True))
    db.commit()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description='Campus library utilities')
    parser.add_argument('--initdb', action='store_true', help='Create tables')
    parser.add_argument('--seed', action='store_true', help='Seed sample accounts and books')
    args = parser.parse_args(argv)
    configure_logging()
    if args.initdb or args.seed:
        Base.metadata.create_all(bind=engine)
        logger.info('Database tables ready')
    if args.seed:
        db = SessionLocal()
        try:
            seed(db)
            logger.info('Seeded sample data')
        finally:
            db.close()


if __name__ == '__main__':
    main()
