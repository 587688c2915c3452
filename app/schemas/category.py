"""
Category schemas for request/response validation
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime

from app.utils.helpers import normalize_text
from app.utils.pagination import PaginatedResponse


NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


class CategoryRecord(BaseModel):
    """Plain category record exchanged between the tree service and a store"""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    name: str
    slug: str = ""
    description: Optional[str] = None
    parent: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    level: int = Field(default=0, ge=0)
    path: List[str] = Field(default_factory=list)
    is_leaf: bool = True
    can_be_parent: bool = True
    is_active: bool = True
    is_featured: bool = False
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryBase(BaseModel):
    """Base schema for categories"""
    name: str = Field(..., min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH, description="Category name")
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH, description="Category description")
    can_be_parent: bool = Field(default=True, description="Whether category may accept children")
    is_active: bool = Field(default=True, description="Whether category is active")
    is_featured: bool = Field(default=False, description="Whether category is featured")
    sort_order: int = Field(default=0, ge=0, description="Display order for sorting")

    @field_validator('name', mode='before')
    @classmethod
    def normalize_name(cls, v):
        """Collapse whitespace before length checks"""
        if isinstance(v, str):
            return normalize_text(v)
        return v


class CategoryCreate(CategoryBase):
    """Schema for creating category"""
    parent: Optional[str] = Field(None, description="Parent category ID")


class CategoryUpdate(BaseModel):
    """Schema for updating category content (structure changes go through reparent)"""
    name: Optional[str] = Field(None, min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    can_be_parent: Optional[bool] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)

    @field_validator('name', mode='before')
    @classmethod
    def normalize_name(cls, v):
        if isinstance(v, str):
            return normalize_text(v)
        return v


class CategoryReparent(BaseModel):
    """Schema for moving a category under a new parent (null promotes to root)"""
    parent: Optional[str] = Field(None, description="New parent category ID")


class CategoryResponse(BaseModel):
    """Schema for category response"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent: Optional[str] = None
    children: List[str] = []
    level: int
    path: List[str] = []
    is_leaf: bool
    can_be_parent: bool
    is_active: bool
    is_featured: bool
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryTreeNode(BaseModel):
    """Category with nested children"""
    category: CategoryResponse
    children: List['CategoryTreeNode'] = Field(default=[], description="Child categories")


class CategoryListResponse(PaginatedResponse[CategoryResponse]):
    """Paginated category list"""


class CategoryTreeResponse(BaseModel):
    """Full tree listing, flat (path ordered) or nested"""
    items: List[CategoryResponse] = []
    nested: List[CategoryTreeNode] = []
    total: int


class ToggleResponse(BaseModel):
    """Result of a status toggle"""
    id: str
    is_active: bool
    is_featured: bool
    affected: int = Field(default=1, description="Number of categories changed")
    message: str


class DeleteResponse(BaseModel):
    """Result of a delete"""
    deleted: List[str]
    policy: Literal["reject", "reassign", "cascade"]
    message: str


IssueKind = Literal[
    "dangling_parent",
    "cycle",
    "level_mismatch",
    "path_mismatch",
    "children_mismatch",
    "leaf_mismatch",
    "duplicate_slug",
]


class ConsistencyIssue(BaseModel):
    """Single invariant violation found while scanning the tree"""
    category_id: str
    kind: IssueKind
    detail: str


class VerifyReport(BaseModel):
    """Result of a read-only verification pass"""
    scanned: int
    consistent: bool
    issues: List[ConsistencyIssue] = []


class RepairReport(BaseModel):
    """Result of a repair pass"""
    scanned: int
    updated: int
    issues: List[ConsistencyIssue] = []
    updated_ids: List[str] = []


CategoryTreeNode.model_rebuild()
