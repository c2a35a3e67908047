from typing import Optional

from sqlalchemy import Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedcycle.database.tables.base_class import BasePublic


class Feeds(BasePublic):
    """One subscribed feed, keyed by its URL."""

    __tablename__ = "feeds"

    url: Mapped[str] = mapped_column(Text, unique=True, index=True)
    author: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Conditional-fetch validators written back by the feed processor
    etag: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_modified: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invalid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invalid_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
