import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Service, Booking, Feedback, User
from ..auth.security import get_optional_user, require_roles, is_admin
from ..schemas.common import pagination
from ..schemas.services import ServiceCreate, ServiceUpdate, ServiceResponse
from ..logging import structlog


router = APIRouter(prefix="/services", tags=["services"])

SORT_COLUMNS = {
    "name": Service.name,
    "basePrice": Service.base_price,
    "category": Service.category,
    "createdAt": Service.created_at,
}


def service_out(s: Service) -> dict:
    return ServiceResponse.model_validate(s).model_dump(mode="json", by_alias=True)


def _like(value: str) -> str:
    return f"%{value.lower()}%"


def _page(q, page: int, limit: int, order_by):
    total = q.count()
    rows = q.order_by(order_by).offset((page - 1) * limit).limit(limit).all()
    return rows, total


@router.get("")
def list_services(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    admin = is_admin(user)
    q = db.query(Service)
    if category and category != "all":
        q = q.filter(Service.category == category)
    if search:
        q = q.filter(or_(func.lower(Service.name).like(_like(search)), func.lower(Service.description).like(_like(search))))
    if min_price is not None:
        q = q.filter(Service.base_price >= min_price)
    if max_price is not None:
        q = q.filter(Service.base_price <= max_price)
    # Inactive services are admin-only
    if not admin:
        q = q.filter(Service.is_active.is_(True))

    column = SORT_COLUMNS.get(sort_by, Service.name)
    rows, total = _page(q, page, limit, column.desc() if sort_order == "desc" else column.asc())

    cat_q = db.query(Service.category).distinct()
    if not admin:
        cat_q = cat_q.filter(Service.is_active.is_(True))
    return {
        "success": True,
        "services": [service_out(s) for s in rows],
        "categories": sorted(c for (c,) in cat_q.all()),
        "pagination": pagination(page, limit, total, "totalServices"),
    }


@router.get("/categories/all")
def list_categories(db: Session = Depends(get_db)):
    return {"success": True, "categories": sorted(c for (c,) in db.query(Service.category).distinct().all())}


@router.get("/category/{category}")
def services_by_category(
    category: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    q = db.query(Service).filter(func.lower(Service.category).like(_like(category)), Service.is_active.is_(True))
    rows, total = _page(q, page, limit, Service.name.asc())
    return {
        "success": True,
        "category": category,
        "services": [service_out(s) for s in rows],
        "pagination": pagination(page, limit, total, "totalServices"),
    }


@router.get("/search")
def search_services(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if not q:
        raise HTTPException(status_code=400, detail="Search query is required")
    pattern = _like(q)
    query = db.query(Service).filter(
        or_(
            func.lower(Service.name).like(pattern),
            func.lower(Service.description).like(pattern),
            func.lower(Service.category).like(pattern),
        ),
        Service.is_active.is_(True),
    )
    rows, total = _page(query, page, limit, Service.name.asc())
    return {
        "success": True,
        "query": q,
        "services": [service_out(s) for s in rows],
        "pagination": pagination(page, limit, total, "totalServices"),
    }


@router.get("/{service_id}")
def get_service(service_id: uuid.UUID, db: Session = Depends(get_db), user: Optional[User] = Depends(get_optional_user)):
    s = db.query(Service).filter(Service.id == service_id).first()
    if not s or (not s.is_active and not is_admin(user)):
        raise HTTPException(status_code=404, detail="Service not found")
    return {"success": True, "service": service_out(s)}


@router.post("", status_code=201)
def create_service(payload: ServiceCreate, db: Session = Depends(get_db), admin=Depends(require_roles("admin"))):
    if db.query(Service).filter(func.lower(Service.name) == payload.name.lower()).first():
        raise HTTPException(status_code=400, detail="Service with this name already exists")
    data = payload.model_dump()
    data["category"] = payload.category.value
    s = Service(**data, is_active=True)
    db.add(s)
    db.commit()
    db.refresh(s)
    structlog.get_logger().info("service_created", service_id=str(s.id), by=str(admin.id))
    return {"success": True, "message": "Service created successfully", "service": service_out(s)}


@router.put("/{service_id}")
def update_service(service_id: uuid.UUID, payload: ServiceUpdate, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    s = db.query(Service).filter(Service.id == service_id).first()
    if not s:
        raise HTTPException(status_code=404, detail="Service not found")
    data = payload.model_dump(exclude_unset=True)
    if data.get("category") is not None:
        data["category"] = payload.category.value
    if data.get("name") and data["name"].lower() != s.name.lower():
        clash = db.query(Service).filter(func.lower(Service.name) == data["name"].lower(), Service.id != s.id).first()
        if clash:
            raise HTTPException(status_code=400, detail="Service with this name already exists")
    for field, value in data.items():
        if value is not None:
            setattr(s, field, value)
    db.commit()
    db.refresh(s)
    return {"success": True, "message": "Service updated successfully", "service": service_out(s)}


@router.delete("/{service_id}")
def delete_service(service_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_roles("admin"))):
    s = db.query(Service).filter(Service.id == service_id).first()
    if not s:
        raise HTTPException(status_code=404, detail="Service not found")
    active = db.query(Booking).filter(
        Booking.service_id == s.id,
        Booking.status.in_(["pending", "accepted", "in_progress"]),
    ).count()
    if active:
        raise HTTPException(status_code=400, detail="Cannot delete service with active bookings")
    # Past bookings and feedback keep a foreign key to the service
    history = db.query(Booking.id).filter(Booking.service_id == s.id).first() or db.query(Feedback.id).filter(Feedback.service_id == s.id).first()
    if history:
        raise HTTPException(status_code=400, detail="Cannot delete service with booking history. Deactivate it instead")
    db.delete(s)
    db.commit()
    return {"success": True, "message": "Service deleted successfully"}
