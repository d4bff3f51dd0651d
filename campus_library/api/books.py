import csv
import io
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, UploadFile, File
from sqlalchemy import or_
from sqlalchemy.orm import Session

from campus_library.api.export import csv_response
from campus_library.core.database import get_db
from campus_library.core.errors import ConflictError, NotFoundError, ValidationError
from campus_library.core.security import Identity, get_identity, require_staff
from campus_library.models import models
from campus_library.schemas import schemas

logger = logging.getLogger("elibrary.books")

router = APIRouter(prefix="/books", tags=["books"])

EXPORT_COLUMNS = ['id', 'title', 'author', 'isbn', 'category', 'available', 'cover_url', 'created_at']


def _get_book(db: Session, book_id: int) -> models.Book:
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if not book:
        raise NotFoundError("Book not found")
    return book


def _ensure_isbn_free(db: Session, isbn: str, book_id: Optional[int] = None) -> None:
    query = db.query(models.Book).filter(models.Book.isbn == isbn)
    if book_id is not None:
        query = query.filter(models.Book.id != book_id)
    if query.first():
        raise ConflictError("Book with this ISBN already exists")


@router.get("/", response_model=List[schemas.BookOut])
def list_books(search: Optional[str] = Query(None, description="search title, author, isbn or category"),
               available: Optional[bool] = None,
               category: Optional[str] = None,
               skip: int = Query(0, ge=0), limit: int = Query(20, ge=1, le=200),
               identity: Identity = Depends(get_identity),
               db: Session = Depends(get_db)):
    query = db.query(models.Book)
    if not identity.is_staff:
        # students only browse what they can borrow
        available = True
    if available is not None:
        query = query.filter(models.Book.available.is_(available))
    if category:
        query = query.filter(models.Book.category.ilike(category))
    if search:
        like_q = f"%{search}%"
        query = query.filter(or_(models.Book.title.ilike(like_q),
                                 models.Book.author.ilike(like_q),
                                 models.Book.isbn.ilike(like_q),
                                 models.Book.category.ilike(like_q)))
    return query.order_by(models.Book.created_at.desc(), models.Book.id.desc()).offset(skip).limit(limit).all()


@router.post("/", response_model=schemas.BookOut, status_code=201)
def create_book(book_in: schemas.BookCreate,
                identity: Identity = Depends(require_staff),
                db: Session = Depends(get_db)):
    _ensure_isbn_free(db, book_in.isbn)
    book = models.Book(
        title=book_in.title,
        author=book_in.author,
        isbn=book_in.isbn,
        category=book_in.category,
        cover_url=book_in.cover_url,
        available=True,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info(f"Created book id={book.id} title={book.title} by user {identity.id}")
    return book


@router.get("/export/csv")
def export_books_csv(identity: Identity = Depends(require_staff), db: Session = Depends(get_db)):
    books = db.query(models.Book).order_by(models.Book.title).all()
    rows = ([getattr(book, col) for col in EXPORT_COLUMNS] for book in books)
    return csv_response(EXPORT_COLUMNS, rows, 'books.csv')


@router.post("/import/csv", response_model=schemas.ImportReport)
def import_books_csv(file: UploadFile = File(...),
                     identity: Identity = Depends(require_staff),
                     db: Session = Depends(get_db)):
    """
    Accepts CSV with headers: title,author,isbn,category,cover_url
    Rows are upserted by ISBN; the availability of existing books is
    never touched.
    """
    try:
        content = file.file.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")
    reader = csv.DictReader(io.StringIO(content))
    created = 0
    updated = 0
    errors = []
    seen = set()
    for i, row in enumerate(reader, start=1):
        if None in row:
            # DictReader files surplus values under the None key
            errors.append({"row": i, "error": "too many fields"})
            continue
        row = {(k or '').strip().lower(): (v or '').strip() for k, v in row.items()}
        try:
            data = schemas.BookCreate(title=row.get('title', ''), author=row.get('author', ''),
                                      isbn=row.get('isbn', ''), category=row.get('category', ''),
                                      cover_url=row.get('cover_url') or None)
        except ValueError as e:
            errors.append({"row": i, "error": str(e)})
            continue
        if data.isbn in seen:
            errors.append({"row": i, "error": f"duplicate ISBN {data.isbn} in file"})
            continue
        seen.add(data.isbn)
        book = db.query(models.Book).filter(models.Book.isbn == data.isbn).first()
        if book:
            book.title = data.title
            book.author = data.author
            book.category = data.category
            book.cover_url = data.cover_url or book.cover_url
            updated += 1
        else:
            db.add(models.Book(title=data.title, author=data.author, isbn=data.isbn,
                               category=data.category, cover_url=data.cover_url, available=True))
            created += 1
    db.commit()
    logger.info(f"CSV import by user {identity.id}: created={created} updated={updated} errors={len(errors)}")
    return {"created": created, "updated": updated, "errors": errors}


@router.get("/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    book = _get_book(db, book_id)
    if not identity.is_staff and not book.available:
        # same visibility as the listing
        raise NotFoundError("Book not found")
    return book


@router.api_route("/{book_id}", methods=["PUT", "PATCH"], response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate,
                identity: Identity = Depends(require_staff),
                db: Session = Depends(get_db)):
    book = _get_book(db, book_id)
    data = book_upd.model_dump(exclude_unset=True)
    if not data:
        raise ValidationError("No fields provided for update")
    for field in ('title', 'author', 'isbn', 'category'):
        if field in data and data[field] is None:
            raise ValidationError(f"{field} cannot be null")
    if 'isbn' in data and data['isbn'] != book.isbn:
        _ensure_isbn_free(db, data['isbn'], book.id)
    for k, v in data.items():
        setattr(book, k, v)
    db.commit()
    db.refresh(book)
    logger.info(f"Updated book id={book.id} fields={sorted(data)}")
    return book


@router.delete("/{book_id}", status_code=204)
def delete_book(book_id: int, identity: Identity = Depends(require_staff), db: Session = Depends(get_db)):
    book = _get_book(db, book_id)
    open_borrowings = db.query(models.Borrowing) \
        .filter(models.Borrowing.book_id == book.id, models.Borrowing.returned_at.is_(None)).count()
    if open_borrowings > 0:
        raise ConflictError("Cannot delete book: it is currently borrowed")
    db.delete(book)
    db.commit()
    logger.info(f"Deleted book id={book_id} by user {identity.id}")
    return Response(status_code=204)
