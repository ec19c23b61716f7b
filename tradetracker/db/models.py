# tradetracker/db/models.py
"""
SQLModel definitions for the price-history store.
Designed for SQLite locally.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field


class PricePoint(SQLModel, table=True):
    """A BTC/USD price observation."""
    __tablename__ = "price_point"

    id: Optional[int] = Field(default=None, primary_key=True)
    # Written as aware UTC. SQLite hands it back naive
    timestamp: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, unique=True, nullable=False)
    )
    # USD cents per BTC
    price_cents: int = Field()
