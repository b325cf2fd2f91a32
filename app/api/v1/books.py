"""
Bookstore · API v1: Books
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.config import get_settings
from app.core.decimal_utils import parse_price, price_str
from app.core.exceptions import (
    BookNotFoundError,
    DuplicateBookError,
    NoFileUploadedError,
    OwnershipError,
)
from app.core.security import IdentityClaim, get_current_user, require_roles
from app.database import get_db
from app.models.books import Book
from app.models.users import SELLER
from app.services.book_import import BookImportService, saved_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])
settings = get_settings()
seller_only = require_roles(SELLER)


class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    price: str
    published_date: str
    seller_id: int
    seller_name: Optional[str] = None


class CreateBookRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=255)
    price: str
    published_date: str = Field("", alias="publishedDate", max_length=32)

    class Config:
        populate_by_name = True


class UpdateBookRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[str] = None
    published_date: Optional[str] = Field(None, alias="publishedDate", max_length=32)

    class Config:
        populate_by_name = True


class UploadResponse(BaseModel):
    message: str
    imported: int
    rejected: List[Dict[str, Any]]


def _to_response(book: Book, include_seller: bool = False) -> BookResponse:
    return BookResponse(
        id=book.id,
        title=book.title,
        author=book.author,
        price=price_str(book.price),
        published_date=book.published_date,
        seller_id=book.seller_id,
        seller_name=book.seller.name if include_seller and book.seller else None,
    )


def _owned_book(action: str):
    """Dependency factory: load a book and require the caller to own it."""

    def _dependency(
        book_id: int,
        db: Session = Depends(get_db),
        current_user: IdentityClaim = Depends(seller_only),
    ) -> Book:
        book = db.get(Book, book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        if book.seller_id != current_user.subject_id:
            raise OwnershipError(book_id, current_user.subject_id, action)
        return book

    return _dependency


def _commit_book(db: Session, book: Book) -> None:
    """Commit, mapping the (title, author) constraint to DuplicateBookError."""
    title, author = book.title, book.author
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateBookError(title, author)
    db.refresh(book)


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_books(
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: IdentityClaim = Depends(seller_only),
):
    """
    Bulk-import books from a CSV with columns title, author, price, publishedDate.

    Duplicate or invalid rows are reported back and the remaining rows are
    stored, unless IMPORT_ABORT_ON_REJECTION is set.
    """
    if file is None:
        raise NoFileUploadedError()

    with saved_upload(
        file.file, settings.UPLOAD_DIR, settings.MAX_UPLOAD_BYTES, file.filename
    ) as path:
        result = BookImportService(db).run(
            path,
            owner_id=current_user.subject_id,
            abort_on_rejection=settings.IMPORT_ABORT_ON_REJECTION,
        )

    return UploadResponse(
        message="Books uploaded successfully",
        imported=len(result.accepted),
        rejected=result.rejections_as_dicts(),
    )


@router.get("/", response_model=List[BookResponse])
def list_books(
    db: Session = Depends(get_db),
    current_user: IdentityClaim = Depends(get_current_user),
):
    """Sellers see their own listings; everyone else sees the full catalogue."""
    if current_user.role == SELLER:
        books = (
            db.query(Book)
            .filter(Book.seller_id == current_user.subject_id)
            .order_by(Book.id)
            .all()
        )
        return [_to_response(b) for b in books]

    books = db.query(Book).options(joinedload(Book.seller)).order_by(Book.id).all()
    return [_to_response(b, include_seller=True) for b in books]


@router.get("/{book_id}", response_model=BookResponse)
def get_book(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: IdentityClaim = Depends(get_current_user),
):
    book = db.get(Book, book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    if current_user.role == SELLER and book.seller_id != current_user.subject_id:
        raise OwnershipError(book_id, current_user.subject_id, "view")
    return _to_response(book)


@router.post("/", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    req: CreateBookRequest,
    db: Session = Depends(get_db),
    current_user: IdentityClaim = Depends(seller_only),
):
    # No duplicate pre-check here, unlike the bulk upload; the table's
    # (title, author) constraint still applies.
    book = Book(
        title=req.title.strip(),
        author=req.author.strip(),
        price=parse_price(req.price),
        published_date=req.published_date.strip(),
        seller_id=current_user.subject_id,
    )
    db.add(book)
    _commit_book(db, book)
    logger.info("Seller %s created book %s", current_user.subject_id, book.id)
    return _to_response(book)


@router.put("/{book_id}", response_model=BookResponse)
def update_book(
    req: UpdateBookRequest,
    book: Book = Depends(_owned_book("edit")),
    db: Session = Depends(get_db),
):
    # Validate before touching the row so a bad price leaves it unchanged
    price = parse_price(req.price) if req.price is not None else None

    if req.title is not None:
        book.title = req.title.strip()
    if req.author is not None:
        book.author = req.author.strip()
    if price is not None:
        book.price = price
    if req.published_date is not None:
        book.published_date = req.published_date.strip()

    _commit_book(db, book)
    return _to_response(book)


@router.delete("/{book_id}")
def delete_book(
    book: Book = Depends(_owned_book("delete")),
    db: Session = Depends(get_db),
) -> Dict[str, str]:
    book_id = book.id
    db.delete(book)
    db.commit()
    logger.info("Deleted book %s", book_id)
    return {"message": "Book deleted"}
