from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from eventmarket.database import get_db
from eventmarket.models import Category, Event
from eventmarket.schemas import (
    CategoryCreate,
    CategoryUpdate,
    CategorySummaryResponse,
    EventWithVenueResponse,
)

router = APIRouter(prefix="/categories", tags=["categories"])


def _get_category_or_404(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    # Names are unique regardless of case
    query = db.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def _event_count(db: Session, category_id: int) -> int:
    return db.query(func.count(Event.id)).filter(Event.category_id == category_id).scalar()


def _summary(category: Category, event_count: int) -> CategorySummaryResponse:
    return CategorySummaryResponse.model_validate(category).model_copy(update={"event_count": event_count})


@router.get("/", response_model=list[CategorySummaryResponse])
def list_categories(db: Session = Depends(get_db)):
    """List categories with how many events each holds."""
    counts = dict(
        db.query(Event.category_id, func.count(Event.id))
        .filter(Event.category_id.isnot(None))
        .group_by(Event.category_id)
        .all()
    )
    categories = db.query(Category).order_by(Category.name).all()
    return [_summary(c, counts.get(c.id, 0)) for c in categories]


@router.get("/{category_id}", response_model=CategorySummaryResponse)
def get_category(category_id: int, db: Session = Depends(get_db)):
    category = _get_category_or_404(db, category_id)
    return _summary(category, _event_count(db, category_id))


@router.get("/{category_id}/events", response_model=list[EventWithVenueResponse])
def list_category_events(
    category_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """Events in a category, soonest first."""
    _get_category_or_404(db, category_id)
    return (
        db.query(Event)
        .options(joinedload(Event.venue), joinedload(Event.category))
        .filter(Event.category_id == category_id)
        .order_by(Event.event_date, Event.event_time)
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.post("/", response_model=CategorySummaryResponse, status_code=201)
def create_category(category: CategoryCreate, db: Session = Depends(get_db)):
    if _name_taken(db, category.name):
        raise HTTPException(status_code=400, detail=f"Category '{category.name}' already exists")

    db_category = Category(**category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return _summary(db_category, 0)


@router.put("/{category_id}", response_model=CategorySummaryResponse)
def update_category(category_id: int, category: CategoryUpdate, db: Session = Depends(get_db)):
    """Rename a category or change its image. Events keep pointing at it."""
    db_category = _get_category_or_404(db, category_id)

    update_data = category.model_dump(exclude_unset=True)
    if update_data.get("name") is None:
        update_data.pop("name", None)
    elif _name_taken(db, update_data["name"], exclude_id=category_id):
        raise HTTPException(status_code=400, detail=f"Category '{update_data['name']}' already exists")

    for field, value in update_data.items():
        setattr(db_category, field, value)

    db.commit()
    db.refresh(db_category)
    return _summary(db_category, _event_count(db, category_id))


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    """Delete a category no event refers to."""
    db_category = _get_category_or_404(db, category_id)

    in_use = _event_count(db, category_id)
    if in_use:
        raise HTTPException(
            status_code=400,
            detail=f"Category still has {in_use} event(s); move or delete them first",
        )

    db.delete(db_category)
    db.commit()
    return None
