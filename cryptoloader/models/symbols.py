"""Canonical symbol table, one row per ticker across all providers."""

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from cryptoloader.models.base import Base

CRYPTO_SEC_TYPE = "Cryptocurrency"


class Symbol(Base):
    """Reconciled symbol record.

    ``symbol`` is the upper-cased ticker and the natural key used for upserts;
    ``sid`` is the surrogate key every mapping row hangs off.
    """

    __tablename__ = "symbols"

    sid: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    symbol: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    sec_type: Mapped[str] = mapped_column(String(50), nullable=False, default=CRYPTO_SEC_TYPE)

    # market_cap_rank or 9999999 when unranked; lower sorts first
    priority: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    market_cap_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    base_currency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quote_currency: Mapped[str | None] = mapped_column(String(20), nullable=True)

    primary_source: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    additional_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
