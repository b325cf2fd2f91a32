"""
Bookstore · Book listings
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.users import User


class Book(Base):
    """
    A listing owned by exactly one seller.
    (title, author) is unique across all sellers; the constraint is the
    authoritative guard, import-time deduplication only rejects early.
    """

    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("title", "author", name="uq_books_title_author"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    published_date: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    seller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    seller: Mapped["User"] = relationship("User", back_populates="books")

    @property
    def key(self) -> tuple[str, str]:
        return (self.title, self.author)

    def __repr__(self):
        return f"<Book(id={self.id}, title={self.title!r}, author={self.author!r})>"
