# backend/icetime/models/player.py
"""
Player reference data.

Players are owned by the registration directory; the booking engine only
reads id, parent account and age category.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Index, String
import ulid

from ..database import Base
from .types import UTCDateTime


class Player(Base):
    """A registered child, keyed to the parent's credit account."""

    __tablename__ = "players"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    account_id = Column(String(64), nullable=False, index=True)
    full_name = Column(String(120), nullable=False)
    age_category = Column(String(20), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_players_account_category", "account_id", "age_category"),)

    def __repr__(self) -> str:
        return f"<Player {self.id}: {self.full_name} ({self.age_category})>"
