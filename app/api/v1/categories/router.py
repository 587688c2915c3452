"""
Category API router
Thin HTTP layer over the category tree service
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Literal, Optional

from app.core.config import settings
from app.schemas.category import (
    CategoryCreate,
    CategoryUpdate,
    CategoryReparent,
    CategoryResponse,
    CategoryListResponse,
    CategoryTreeResponse,
    DeleteResponse,
    ToggleResponse,
    VerifyReport,
    RepairReport,
)
from app.services.category_tree import CategoryTree, build_tree
from app.utils.dependencies import get_category_tree, get_pagination_params
from app.utils.helpers import calculate_pages
from app.utils.pagination import PaginationParams

router = APIRouter()


@router.get("/", response_model=CategoryListResponse)
async def get_categories(
    parent: Optional[str] = Query(None, description="Filter by parent category ID ('null' for roots)"),
    level: Optional[int] = Query(None, ge=0, description="Filter by level"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    is_featured: Optional[bool] = Query(None, description="Filter by featured status"),
    sort_by: Literal["sort_order", "name", "level", "created_at", "updated_at"] = Query("sort_order"),
    sort_order: Literal["asc", "desc"] = Query("asc"),
    pagination: PaginationParams = Depends(get_pagination_params),
    tree: CategoryTree = Depends(get_category_tree)
):
    """Get categories with pagination and filtering"""
    filters = {}
    if parent is not None:
        filters["parent"] = None if parent in ("null", "") else parent
    if level is not None:
        filters["level"] = level
    if is_active is not None:
        filters["is_active"] = is_active
    if is_featured is not None:
        filters["is_featured"] = is_featured

    items, total = await tree.list_categories(
        filters,
        page=pagination.page,
        size=pagination.size,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return CategoryListResponse(
        items=[CategoryResponse.model_validate(c) for c in items],
        total=total,
        page=pagination.page,
        size=pagination.size,
        pages=calculate_pages(total, pagination.size)
    )


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Create category, optionally under a parent"""
    category = await tree.create(**data.model_dump())
    return CategoryResponse.model_validate(category)


@router.get("/tree", response_model=CategoryTreeResponse)
async def get_category_tree_listing(
    nested: bool = Query(False, description="Return nested nodes instead of a flat listing"),
    tree: CategoryTree = Depends(get_category_tree)
):
    """Every category, ancestors first and siblings by name"""
    categories = await tree.get_tree()
    if nested:
        return CategoryTreeResponse(nested=build_tree(categories), total=len(categories))
    return CategoryTreeResponse(
        items=[CategoryResponse.model_validate(c) for c in categories],
        total=len(categories)
    )


@router.get("/featured", response_model=List[CategoryResponse])
async def get_featured_categories(
    limit: int = Query(settings.FEATURED_CATEGORIES_LIMIT, ge=1, le=settings.MAX_PAGE_SIZE),
    tree: CategoryTree = Depends(get_category_tree)
):
    """Active featured categories"""
    return [CategoryResponse.model_validate(c) for c in await tree.get_featured(limit)]


@router.get("/parents", response_model=List[CategoryResponse])
async def get_parent_categories(
    level: int = Query(0, ge=0, description="Level of candidate parents"),
    exclude_id: Optional[str] = Query(None, description="Category being edited"),
    tree: CategoryTree = Depends(get_category_tree)
):
    """Candidate parents for dropdown selection"""
    categories = await tree.get_parent_options(level=level, exclude_id=exclude_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get("/maintenance/verify", response_model=VerifyReport)
async def verify_categories(tree: CategoryTree = Depends(get_category_tree)):
    """Report hierarchy inconsistencies without writing"""
    return await tree.verify()


@router.post("/maintenance/repair", response_model=RepairReport)
async def repair_categories(tree: CategoryTree = Depends(get_category_tree)):
    """Rebuild the hierarchy from parent references"""
    return await tree.repair()


@router.get("/slug/{slug}", response_model=CategoryResponse)
async def get_category_by_slug(
    slug: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Get category by slug"""
    return CategoryResponse.model_validate(await tree.get_by_slug(slug))


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Get category by ID"""
    return CategoryResponse.model_validate(await tree.get(category_id))


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Update category content"""
    category = await tree.update(category_id, data.model_dump(exclude_unset=True))
    return CategoryResponse.model_validate(category)


@router.put("/{category_id}/parent", response_model=CategoryResponse)
async def move_category(
    category_id: str,
    data: CategoryReparent,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Move category under a new parent, or to the root with null"""
    category = await tree.reparent(category_id, data.parent)
    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", response_model=DeleteResponse)
async def delete_category(
    category_id: str,
    policy: Optional[Literal["reject", "reassign", "cascade"]] = Query(None),
    tree: CategoryTree = Depends(get_category_tree)
):
    """Delete category; subcategories handled per policy"""
    policy = policy or tree.delete_policy
    deleted = await tree.delete(category_id, policy=policy)
    return DeleteResponse(
        deleted=deleted,
        policy=policy,
        message="Category deleted successfully"
    )


@router.patch("/{category_id}/toggle-status", response_model=ToggleResponse)
async def toggle_category_status(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Toggle active status; deactivation cascades to subcategories"""
    category, affected = await tree.toggle_active(category_id)
    return ToggleResponse(
        id=category.id,
        is_active=category.is_active,
        is_featured=category.is_featured,
        affected=affected,
        message=f"Category {'activated' if category.is_active else 'deactivated'} successfully"
    )


@router.patch("/{category_id}/toggle-featured", response_model=ToggleResponse)
async def toggle_category_featured(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Toggle featured status"""
    category = await tree.toggle_featured(category_id)
    return ToggleResponse(
        id=category.id,
        is_active=category.is_active,
        is_featured=category.is_featured,
        message=f"Category {'featured' if category.is_featured else 'unfeatured'} successfully"
    )


@router.get("/{category_id}/children", response_model=List[CategoryResponse])
async def get_category_children(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Direct subcategories"""
    return [CategoryResponse.model_validate(c) for c in await tree.get_children(category_id)]


@router.get("/{category_id}/descendants", response_model=List[CategoryResponse])
async def get_category_descendants(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Whole subtree below the category"""
    return [CategoryResponse.model_validate(c) for c in await tree.get_descendants(category_id)]


@router.get("/{category_id}/ancestors", response_model=List[CategoryResponse])
async def get_category_ancestors(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Ancestors, root first"""
    return [CategoryResponse.model_validate(c) for c in await tree.get_ancestors(category_id)]


@router.get("/{category_id}/breadcrumbs", response_model=List[CategoryResponse])
async def get_category_breadcrumbs(
    category_id: str,
    tree: CategoryTree = Depends(get_category_tree)
):
    """Ancestors plus the category itself, root first"""
    return [CategoryResponse.model_validate(c) for c in await tree.get_breadcrumbs(category_id)]
