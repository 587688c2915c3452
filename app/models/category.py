"""
Category model for product categorization
Stores the hierarchy denormalized: parent link, children cache, ancestry path and level
"""

from sqlalchemy import Column, String, Integer, Boolean, Text, JSON, Index

from .base import Base, TimestampedModel, SerializableModel


class Category(Base, TimestampedModel, SerializableModel):
    """Product category with parent-child hierarchy"""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(150), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Hierarchy
    parent = Column(String(36), nullable=True, index=True)
    children = Column(JSON, nullable=False, default=list)
    level = Column(Integer, nullable=False, default=0)
    path = Column(JSON, nullable=False, default=list)
    is_leaf = Column(Boolean, nullable=False, default=True)
    can_be_parent = Column(Boolean, nullable=False, default=True)

    # Display
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)

    # Indexes
    __table_args__ = (
        Index("idx_categories_parent_active", "parent", "is_active"),
        Index("idx_categories_level", "level"),
    )
