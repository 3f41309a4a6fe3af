"""User model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledgerlink.database import Base
from ledgerlink.models.base import TimestampMixin, UUIDMixin


class User(Base, UUIDMixin, TimestampMixin):
    """Owner of accounts, transactions and pending transfers.

    Credentials are issued by an external identity provider; this table only
    anchors ownership so tokens can be checked against a known subject.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
