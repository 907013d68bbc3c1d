"""Category routes."""
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from levelup.core.errors import NotFound
from levelup.core.security import get_current_user, require_admin
from levelup.db.sessions import commit, get_db
from levelup.models.category import Category
from levelup.models.chapter import Chapter
from levelup.models.user import User
from levelup.models.user_progress import UserProgress
from levelup.utils.field_mapping import CATEGORY_FIELDS
from levelup.utils.slugs import require_slug, title_slug


router = APIRouter(prefix="/api/categories", tags=["Categories"])

DUPLICATE_SLUG = "A category with this slug already exists"


# Request/Response schemas
class CategoryOrder(BaseModel):
    id: int
    sortOrder: int


class ReorderCategoriesRequest(BaseModel):
    categories: List[CategoryOrder]


class CategoryProgressResponse(BaseModel):
    categoryId: int
    completed: int
    total: int


def _get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFound("Category not found")
    return category


@router.get("")
def list_categories(db: Session = Depends(get_db)):
    categories = db.query(Category).order_by(Category.sort_order, Category.id).all()
    return [CATEGORY_FIELDS.serialize(c) for c in categories]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    values = CATEGORY_FIELDS.columns(payload)
    slug = title_slug(values.get("title"))
    if not values.get("slug"):
        values["slug"] = slug
    require_slug(values)

    category = Category(**values)
    db.add(category)
    commit(db, DUPLICATE_SLUG)
    db.refresh(category)
    return CATEGORY_FIELDS.serialize(category)


@router.post("/reorder")
def reorder_categories(
    request: ReorderCategoriesRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Apply new sort orders to several categories in one transaction."""
    ids = [item.id for item in request.categories]
    found = {c.id: c for c in db.query(Category).filter(Category.id.in_(ids))}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFound(f"Category not found: {missing[0]}")

    for item in request.categories:
        found[item.id].sort_order = item.sortOrder
    commit(db)
    return {"success": True}


@router.put("/{category_id}")
def update_category(
    category_id: int,
    payload: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = _get_category(db, category_id)
    values = CATEGORY_FIELDS.columns(payload)
    if "title" in values:
        slug = title_slug(values["title"])
        if "slug" not in values:
            values["slug"] = slug
    require_slug(values)

    for column, value in values.items():
        setattr(category, column, value)
    commit(db, DUPLICATE_SLUG)
    db.refresh(category)
    return CATEGORY_FIELDS.serialize(category)


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = _get_category(db, category_id)
    # chapters survive as uncategorized
    db.query(Chapter).filter(Chapter.category_id == category_id).update(
        {Chapter.category_id: None}, synchronize_session=False
    )
    db.delete(category)
    commit(db)
    return {"success": True}


@router.get("/{category_id}/progress", response_model=CategoryProgressResponse)
def category_progress(
    category_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """How many of the category's chapters the caller has completed."""
    _get_category(db, category_id)
    chapter_ids = [row.id for row in db.query(Chapter.id).filter(Chapter.category_id == category_id)]
    completed = 0
    if chapter_ids:
        completed = (
            db.query(UserProgress)
            .filter(
                UserProgress.user_id == current_user.id,
                UserProgress.chapter_id.in_(chapter_ids),
                UserProgress.completed.is_(True),
            )
            .count()
        )
    return CategoryProgressResponse(categoryId=category_id, completed=completed, total=len(chapter_ids))
