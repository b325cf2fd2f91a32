"""
Bookstore · Bulk Book Import Service
Parses seller CSV uploads, drops duplicate (title, author) rows and stores the
rest in one transaction.
"""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import (
    AbstractSet,
    Any,
    BinaryIO,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    TextIO,
    Tuple,
)

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.decimal_utils import parse_price
from app.core.exceptions import (
    ImportConflictError,
    ImportRejectedError,
    InvalidPriceError,
    InvalidUploadError,
    NothingToImportError,
    PartialImportFailureError,
    StorageError,
)
from app.models.books import Book

logger = logging.getLogger(__name__)

BookKey = Tuple[str, str]

REQUIRED_COLUMNS = ("title", "author", "price", "publishedDate")

# Rejection reasons
DUPLICATE_BOOK = "DuplicateBook"
INVALID_PRICE = "InvalidPrice"
MISSING_FIELD = "MissingField"
INVALID_FIELD = "InvalidField"

# Column widths of the books table, checked per row before storing
FIELD_LIMITS: Dict[str, int] = {
    name: Book.__table__.c[name].type.length
    for name in ("title", "author", "published_date")
}

_COPY_CHUNK_SIZE = 64 * 1024


# ─── Row / Result types ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class RawRow:
    """One CSV row as text, before any validation."""

    title: str
    author: str
    price: str
    published_date: str = ""
    line_number: int = 0

    @property
    def key(self) -> BookKey:
        return (self.title, self.author)


@dataclass(frozen=True)
class BookDraft:
    """An accepted row, ready to become a Book."""

    title: str
    author: str
    price: Decimal
    published_date: str
    seller_id: int


@dataclass(frozen=True)
class RejectedRow:
    line_number: int
    title: str
    author: str
    reason: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImportBatchResult:
    accepted: List[BookDraft] = field(default_factory=list)
    rejections: List[RejectedRow] = field(default_factory=list)

    def rejections_as_dicts(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.rejections]


# ─── CSV parsing ──────────────────────────────────────────────────────────────


def _first_line(record: Dict[str, Any], last_line: int) -> int:
    # line_num is the last physical line; quoted cells may span several
    spanned = 0
    for value in record.values():
        cells = value if isinstance(value, list) else [value]
        spanned += sum(c.count("\n") for c in cells if isinstance(c, str))
    return last_line - spanned


def _cell(record: Dict[str, Optional[str]], column: str) -> str:
    value = record.get(column)
    return value.strip() if isinstance(value, str) else ""


def read_csv_rows(stream: TextIO) -> Iterator[RawRow]:
    """
    Yield RawRows from a CSV with a ``title,author,price,publishedDate`` header.

    Extra columns are ignored. Raises InvalidUploadError when the header is
    missing or lacks a required column.
    """
    reader = csv.DictReader(stream)
    if reader.fieldnames is None:
        raise InvalidUploadError("file is empty, expected a header row")

    reader.fieldnames = [name.strip() for name in reader.fieldnames]
    missing = [c for c in REQUIRED_COLUMNS if c not in reader.fieldnames]
    if missing:
        raise InvalidUploadError(f"missing column(s): {', '.join(missing)}")

    for record in reader:
        yield RawRow(
            title=_cell(record, "title"),
            author=_cell(record, "author"),
            price=_cell(record, "price"),
            published_date=_cell(record, "publishedDate"),
            line_number=_first_line(record, reader.line_num),
        )


# ─── Deduplication ────────────────────────────────────────────────────────────


def import_batch(
    existing_keys: AbstractSet[BookKey],
    rows: Iterable[RawRow],
    owner_id: int,
) -> ImportBatchResult:
    """
    Scan rows in order and split them into accepted drafts and rejections.

    A row is rejected when its (title, author) is already stored, or was
    accepted earlier in the same batch, when a field is wider than its
    column, or when its price does not parse.
    A rejection never stops the scan. ``existing_keys`` is not modified.
    """
    result = ImportBatchResult()
    accepted_keys: Set[BookKey] = set()

    for row in rows:
        if not row.title or not row.author:
            result.rejections.append(
                RejectedRow(
                    line_number=row.line_number,
                    title=row.title,
                    author=row.author,
                    reason=MISSING_FIELD,
                    message="title and author are required",
                )
            )
            continue

        too_long = [
            name for name, limit in FIELD_LIMITS.items() if len(getattr(row, name)) > limit
        ]
        if too_long:
            result.rejections.append(
                RejectedRow(
                    line_number=row.line_number,
                    title=row.title,
                    author=row.author,
                    reason=INVALID_FIELD,
                    message="too long: " + ", ".join(
                        f"{name} (max {FIELD_LIMITS[name]})" for name in too_long
                    ),
                )
            )
            continue

        key = row.key
        if key in existing_keys or key in accepted_keys:
            result.rejections.append(
                RejectedRow(
                    line_number=row.line_number,
                    title=row.title,
                    author=row.author,
                    reason=DUPLICATE_BOOK,
                    message=f'The book "{row.title}" by "{row.author}" has already been uploaded',
                )
            )
            continue

        try:
            price = parse_price(row.price)
        except InvalidPriceError as exc:
            result.rejections.append(
                RejectedRow(
                    line_number=row.line_number,
                    title=row.title,
                    author=row.author,
                    reason=INVALID_PRICE,
                    message=exc.message,
                )
            )
            continue

        accepted_keys.add(key)
        result.accepted.append(
            BookDraft(
                title=row.title,
                author=row.author,
                price=price,
                published_date=row.published_date,
                seller_id=owner_id,
            )
        )

    return result


# ─── Upload file handling ─────────────────────────────────────────────────────


@contextmanager
def saved_upload(
    source: BinaryIO,
    upload_dir: str,
    max_bytes: int,
    filename: Optional[str] = None,
) -> Iterator[Path]:
    """
    Copy an uploaded file into ``upload_dir`` and yield its path.

    The copy is always removed on exit, whether the import succeeded,
    failed, or the request was cancelled.
    """
    if filename and not filename.lower().endswith(".csv"):
        raise InvalidUploadError("file must be a CSV")

    os.makedirs(upload_dir, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(
        mode="wb",
        suffix=".csv",
        prefix="books_",
        dir=upload_dir,
        delete=False,
    )
    tmp_path = Path(tmp.name)

    try:
        written = 0
        with tmp:
            while True:
                chunk = source.read(_COPY_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise InvalidUploadError(
                        f"file exceeds the {max_bytes} byte upload limit"
                    )
                tmp.write(chunk)
        logger.debug("Saved upload to temp file: %s (%d bytes)", tmp_path, written)
        yield tmp_path
    finally:
        tmp_path.unlink(missing_ok=True)


# ─── Import Service ───────────────────────────────────────────────────────────


class BookImportService:
    """
    Runs a seller's CSV upload against the books table.

    The existing-keys snapshot is read once, before scanning, and is only an
    early rejection: the uq_books_title_author constraint decides at commit.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def load_existing_keys(self) -> Set[BookKey]:
        try:
            rows = self._session.execute(select(Book.title, Book.author))
            return {(title, author) for title, author in rows}
        except SQLAlchemyError as exc:
            logger.error("Failed to load existing book keys: %s", exc)
            raise StorageError("loading existing books", str(exc)) from exc

    def scan_file(self, path: Path, owner_id: int) -> ImportBatchResult:
        existing_keys = self.load_existing_keys()
        try:
            with open(path, newline="", encoding="utf-8-sig") as fh:
                return import_batch(existing_keys, read_csv_rows(fh), owner_id)
        except UnicodeDecodeError:
            raise InvalidUploadError("file is not UTF-8 encoded text")
        except csv.Error as exc:
            raise InvalidUploadError(f"malformed CSV: {exc}")

    def run(
        self, path: Path, owner_id: int, abort_on_rejection: bool = False
    ) -> ImportBatchResult:
        """
        Scan the file, apply the rejection policy and store accepted rows.

        Default policy stores every accepted row and reports the rest. With
        ``abort_on_rejection`` a single rejected row fails the whole upload.
        """
        logger.info("Book import started for seller %s", owner_id)
        result = self.scan_file(path, owner_id)
        rejections = result.rejections_as_dicts()

        if result.rejections:
            logger.info(
                "Book import for seller %s rejected %d row(s)",
                owner_id,
                len(result.rejections),
            )
            if abort_on_rejection:
                raise ImportRejectedError(rejections)

        if not result.accepted:
            raise NothingToImportError(rejections)

        self.persist(result.accepted)
        logger.info(
            "Book import for seller %s stored %d book(s)", owner_id, len(result.accepted)
        )
        return result

    def persist(self, drafts: List[BookDraft]) -> List[Book]:
        """Insert all drafts in a single transaction: every row or none."""
        books = [Book(**asdict(draft)) for draft in drafts]
        try:
            self._session.add_all(books)
            self._session.flush()
            stored = sum(1 for book in books if book.id is not None)
            if stored != len(books):
                self._session.rollback()
                raise PartialImportFailureError(attempted=len(books), stored=stored)
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            logger.warning("Book import hit the uniqueness constraint: %s", exc.orig)
            raise ImportConflictError(attempted=len(books)) from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("Book import failed to store %d book(s): %s", len(books), exc)
            raise StorageError("uploading books", str(exc)) from exc
        return books
