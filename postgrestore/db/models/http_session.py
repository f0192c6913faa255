from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, LargeBinary
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from postgrestore.db.base import Base

TABLE_NAME = "http_sessions"


class HttpSession(Base):
    """One persisted session: the sealed value map plus its three timestamps."""

    __tablename__ = TABLE_NAME

    # SERIAL on PostgreSQL
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # BYTEA on PostgreSQL
    data: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    created_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.current_timestamp(), nullable=True
    )
    modified_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<HttpSession(id={self.id!r}, expires_on={self.expires_on!r})>"
