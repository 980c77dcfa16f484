import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Inventory, utcnow
from ..auth.security import get_current_user, require_roles
from ..schemas.common import pagination
from ..schemas.inventory import InventoryCreate, InventoryUpdate, RestockRequest, InventoryResponse
from ..services.inventory import low_stock_alert
from ..logging import structlog


router = APIRouter(prefix="/inventory", tags=["inventory"])

SORT_COLUMNS = {
    "name": Inventory.name,
    "price": Inventory.price,
    "quantity": Inventory.quantity,
    "category": Inventory.category,
    "createdAt": Inventory.created_at,
}


def item_out(item: Inventory) -> dict:
    return InventoryResponse.model_validate(item).model_dump(mode="json", by_alias=True)


def get_item_or_404(db: Session, item_id: uuid.UUID) -> Inventory:
    item = db.query(Inventory).filter(Inventory.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


def _categories(db: Session) -> list:
    return sorted(c for (c,) in db.query(Inventory.category).distinct().all())


@router.get("")
def list_inventory(
    category: Optional[str] = None,
    search: Optional[str] = None,
    in_stock: Optional[bool] = Query(None, alias="inStock"),
    low_stock: Optional[bool] = Query(None, alias="lowStock"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
    _=Depends(get_current_user),
):
    q = db.query(Inventory)
    if category:
        q = q.filter(Inventory.category == category)
    if search:
        pattern = f"%{search.lower()}%"
        q = q.filter(or_(func.lower(Inventory.name).like(pattern), func.lower(Inventory.description).like(pattern)))
    if in_stock:
        q = q.filter(Inventory.quantity > 0)
    if low_stock:
        q = q.filter(Inventory.quantity <= Inventory.reorder_level)

    column = SORT_COLUMNS.get(sort_by, Inventory.name)
    total = q.count()
    rows = q.order_by(column.desc() if sort_order == "desc" else column.asc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "inventory": [item_out(i) for i in rows],
        "pagination": {**pagination(page, limit, total, "totalItems"), "itemsPerPage": limit},
        "categories": _categories(db),
        "filters": {"category": category, "search": search, "inStock": in_stock, "lowStock": low_stock},
    }


@router.get("/categories/all")
def list_categories(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return {"success": True, "categories": _categories(db)}


@router.get("/stats/overview")
def stats_overview(db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    value = func.coalesce(func.sum(Inventory.price * Inventory.quantity), 0)
    total, total_value, low, out = db.query(
        func.count(Inventory.id),
        value,
        func.coalesce(func.sum(case((Inventory.quantity <= Inventory.reorder_level, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Inventory.quantity == 0, 1), else_=0)), 0),
    ).one()
    by_category = db.query(Inventory.category, func.count(Inventory.id), value).group_by(Inventory.category).order_by(func.count(Inventory.id).desc()).all()
    return {
        "success": True,
        "stats": {
            "totalItems": int(total or 0),
            "totalValue": round(float(total_value or 0), 2),
            "lowStockItems": int(low or 0),
            "outOfStockItems": int(out or 0),
        },
        "categoryStats": [
            {"category": cat, "count": int(count), "totalValue": round(float(val or 0), 2)}
            for cat, count, val in by_category
        ],
    }


@router.get("/{item_id}")
def get_item(item_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(get_current_user)):
    return {"success": True, "inventory": item_out(get_item_or_404(db, item_id))}


@router.post("", status_code=201)
def create_item(payload: InventoryCreate, db: Session = Depends(get_db), admin=Depends(require_roles("admin"))):
    category = payload.category.value
    clash = db.query(Inventory).filter(
        func.lower(Inventory.name) == payload.name.lower(),
        Inventory.category == category,
    ).first()
    if clash:
        raise HTTPException(status_code=400, detail="An item with this name already exists in this category")

    item = Inventory(
        name=payload.name,
        description=payload.description,
        category=category,
        quantity=payload.quantity,
        unit=payload.unit,
        price=payload.price,
        cost=payload.cost,
        supplier=payload.supplier.model_dump() if payload.supplier else None,
        location=payload.location or "Main Storage",
        reorder_level=payload.reorder_level if payload.reorder_level is not None else 10,
        image=payload.image,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        last_restocked=utcnow(),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    if item.quantity <= item.reorder_level:
        low_stock_alert(db, item)
    structlog.get_logger().info("inventory_created", item_id=str(item.id), by=str(admin.id))
    return {"success": True, "message": "Inventory item created successfully", "inventory": item_out(item)}


@router.put("/{item_id}")
def update_item(item_id: uuid.UUID, payload: InventoryUpdate, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    item = get_item_or_404(db, item_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("category") is not None:
        data["category"] = payload.category.value
    if "supplier" in data:
        data["supplier"] = payload.supplier.model_dump() if payload.supplier else None
    new_quantity = data.get("quantity")
    if new_quantity is not None and new_quantity > item.quantity:
        item.last_restocked = utcnow()
    for field, value in data.items():
        if value is None and field != "supplier":
            continue
        setattr(item, field, value)
    db.commit()
    db.refresh(item)
    return {"success": True, "message": "Inventory item updated successfully", "inventory": item_out(item)}


@router.delete("/{item_id}")
def delete_item(item_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    item = get_item_or_404(db, item_id)
    db.delete(item)
    db.commit()
    return {"success": True, "message": "Inventory item deleted successfully"}


@router.post("/{item_id}/restock")
def restock(item_id: uuid.UUID, payload: RestockRequest, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    item = get_item_or_404(db, item_id)
    item.update_quantity(payload.quantity, "add")
    if payload.cost is not None:
        item.cost = payload.cost
    db.commit()
    db.refresh(item)
    structlog.get_logger().info("inventory_restocked", item_id=str(item.id), added=payload.quantity, quantity=item.quantity)
    return {
        "success": True,
        "message": f"Restocked {payload.quantity} {item.unit} of {item.name}",
        "inventory": item_out(item),
    }
