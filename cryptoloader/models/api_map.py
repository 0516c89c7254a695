"""Per-provider identifiers for each symbol (the mapping cache)."""

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cryptoloader.models.base import Base


class CryptoApiMap(Base):
    """Links a symbol's sid to the id a provider uses for it.

    Example rows:
        - sid=1 api_source="coingecko"   api_id="bitcoin"
        - sid=1 api_source="coinpaprika" api_id="btc-bitcoin"
    """

    __tablename__ = "crypto_api_map"

    sid: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("symbols.sid", ondelete="CASCADE"),
        primary_key=True,
    )
    api_source: Mapped[str] = mapped_column(String(50), primary_key=True, index=True)

    api_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    api_slug: Mapped[str | None] = mapped_column(String(200), nullable=True)
    api_symbol: Mapped[str | None] = mapped_column(String(50), nullable=True)

    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_verified: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
