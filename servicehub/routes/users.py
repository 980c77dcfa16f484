import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles
from ..schemas.auth import UserProfile
from ..schemas.common import pagination
from ..schemas.users import ProfileUpdate, AddressIn


router = APIRouter(prefix="/users", tags=["users"])


def profile_out(user: User) -> dict:
    return UserProfile.model_validate(user).model_dump(mode="json", by_alias=True)


@router.get("")
def list_users(
    role: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_roles("admin")),
):
    q = db.query(User)
    if role and role != "all":
        q = q.filter(User.role == role)
    total = q.count()
    rows = q.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "users": [profile_out(u) for u in rows],
        "pagination": pagination(page, limit, total, "totalUsers"),
    }


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return {"success": True, "user": profile_out(user)}


@router.put("/profile")
def update_profile(payload: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    data = payload.model_dump(exclude_unset=True)
    if data.get("email") and data["email"] != user.email:
        if db.query(User).filter(User.email == data["email"], User.id != user.id).first():
            raise HTTPException(status_code=400, detail="Email is already taken")
    if data.get("username") and data["username"] != user.username:
        if db.query(User).filter(User.username == data["username"], User.id != user.id).first():
            raise HTTPException(status_code=400, detail="Username is already taken")
    for field, value in data.items():
        if value is None and field in ("username", "email"):
            continue
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return {"success": True, "message": "Profile updated successfully", "user": profile_out(user)}


def _address_doc(payload: AddressIn, address_id: str) -> dict:
    return {
        "id": address_id,
        "type": payload.type,
        "address": payload.address,
        "city": payload.city,
        "state": payload.state,
        "zipCode": payload.zip_code,
        "country": payload.country or "India",
        "isDefault": payload.is_default,
        "instructions": payload.instructions or "",
    }


def _save_addresses(db: Session, user: User, addresses: list, new_default: Optional[str] = None) -> None:
    # Only one default address per user
    if new_default:
        addresses = [dict(a, isDefault=(a.get("id") == new_default)) for a in addresses]
    user.addresses = addresses
    db.commit()


@router.get("/addresses")
def list_addresses(user: User = Depends(get_current_user)):
    return {"success": True, "addresses": user.addresses or []}


@router.post("/addresses")
def add_address(payload: AddressIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    doc = _address_doc(payload, str(uuid.uuid4()))
    addresses = list(user.addresses or []) + [doc]
    _save_addresses(db, user, addresses, new_default=doc["id"] if payload.is_default else None)
    return {"success": True, "message": "Address added successfully", "address": doc}


@router.put("/addresses/{address_id}")
def update_address(address_id: str, payload: AddressIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    addresses = list(user.addresses or [])
    idx = next((i for i, a in enumerate(addresses) if a.get("id") == address_id), None)
    if idx is None:
        raise HTTPException(status_code=404, detail="Address not found")
    doc = _address_doc(payload, address_id)
    addresses[idx] = doc
    _save_addresses(db, user, addresses, new_default=address_id if payload.is_default else None)
    return {"success": True, "message": "Address updated successfully", "address": doc}


@router.delete("/addresses/{address_id}")
def delete_address(address_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    addresses = list(user.addresses or [])
    remaining = [a for a in addresses if a.get("id") != address_id]
    if len(remaining) == len(addresses):
        raise HTTPException(status_code=404, detail="Address not found")
    _save_addresses(db, user, remaining)
    return {"success": True, "message": "Address deleted successfully"}
