"""Declarative base and shared column mixins"""

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase, declared_attr
from sqlalchemy.sql import func
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampedModel:
    """created_at / updated_at columns, set by the application and defaulted by the server"""

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            index=True
        )

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow
        )


class SerializableModel:
    """Column-wise assignment from plain dicts"""

    def update_from_dict(self, data: Dict[str, Any], exclude: Optional[list] = None):
        """Copy matching keys onto mapped columns, skipping excluded ones"""
        exclude = set(exclude or [])
        columns = {column.name for column in self.__table__.columns}

        for key, value in data.items():
            if key in columns and key not in exclude:
                setattr(self, key, value)

    def __repr__(self):
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"


__all__ = [
    'Base',
    'TimestampedModel',
    'SerializableModel',
    'utcnow',
]
