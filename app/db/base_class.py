# app/db/base_class.py
from __future__ import annotations

"""
# CinePass — SQLAlchemy Base

SQLAlchemy 2.0 declarative **Base** with:
- Global **naming conventions** (Alembic-friendly, stable constraint names)
- Portable column types shared by the models:
  - `JSONType`: JSONB on PostgreSQL, JSON elsewhere (SQLite in tests)
  - `Money`: `Numeric(10, 2)` returned as `Decimal`

Usage:
    from app.db.base_class import Base, JSONType, Money
"""

from sqlalchemy import JSON, MetaData, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# ──────────────────────────────────────────────────────────────────────────────
# 🏷️ Naming conventions (stable constraint names for Alembic)
# ──────────────────────────────────────────────────────────────────────────────
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

JSONType = JSON().with_variant(JSONB(), "postgresql")


def Money() -> Numeric:
    return Numeric(10, 2, asdecimal=True)


# ──────────────────────────────────────────────────────────────────────────────
# 🧱 Declarative Base
# ──────────────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Global declarative base for CinePass models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    def __repr__(self) -> str:  # pragma: no cover
        attrs = [f"{key}={self.__dict__[key]!r}" for key in ("id", "user_id", "order_id") if key in self.__dict__]
        return f"{self.__class__.__name__}({', '.join(attrs)})"


__all__ = ["Base", "JSONType", "Money", "NAMING_CONVENTION"]
