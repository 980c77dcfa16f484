"""
Inventory bookkeeping for bookings.

Three independent read-modify-write paths on ``Inventory.quantity``:
reserve on booking create, restore on cancellation, consume on completion.
None of them locks the row; quantity is clamped at zero on every decrement.
"""
import uuid
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.models import Booking, Inventory
from ..logging import structlog
from .notifications import notify_admins


def _item_id(line: Dict):
    raw = line.get("itemId") or line.get("item_id")
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def _get_item(db: Session, line: Dict) -> Optional[Inventory]:
    item_id = _item_id(line)
    if item_id is None:
        return None
    return db.query(Inventory).filter(Inventory.id == item_id).first()


def reserve_inventory(db: Session, lines: List[Dict]) -> Dict:
    """
    Decrement stock for each selected line.

    A line fails when the item is missing or ``quantity < requested``; other
    lines are still processed. Lines already decremented are not rolled back.

    Returns:
        {"success", "message", "results"} plus "failedItems" when anything failed
    """
    if not lines:
        return {"success": True, "message": "No inventory items selected", "results": []}

    log = structlog.get_logger()
    results = []
    for line in lines:
        requested = int(line.get("quantity") or 0)
        item = _get_item(db, line)
        if item is None:
            results.append({"itemId": str(line.get("itemId")), "itemName": line.get("name"), "success": False, "error": "Item not found"})
            continue
        if item.quantity < requested:
            results.append({
                "itemId": str(item.id),
                "itemName": item.name,
                "success": False,
                "error": f"Insufficient stock. Available: {item.quantity}, Required: {requested}",
            })
            continue
        old_quantity = item.quantity
        item.update_quantity(requested, "subtract")
        db.commit()
        log.info("inventory_reserved", item_id=str(item.id), old=old_quantity, new=item.quantity)
        results.append({
            "itemId": str(item.id),
            "itemName": item.name,
            "success": True,
            "oldQuantity": old_quantity,
            "newQuantity": item.quantity,
            "reducedBy": requested,
        })

    failed = [r for r in results if not r["success"]]
    if failed:
        return {
            "success": False,
            "message": "Some inventory items could not be reduced",
            "failedItems": failed,
            "successfulItems": [r for r in results if r["success"]],
        }
    return {"success": True, "message": "All inventory items reduced successfully", "results": results}


def restore_inventory(db: Session, lines: List[Dict]) -> Dict:
    """Add reserved quantities back; a missing item is reported, not fatal."""
    if not lines:
        return {"success": True, "message": "No inventory items to restore", "results": []}

    log = structlog.get_logger()
    results = []
    for line in lines:
        quantity = int(line.get("quantity") or 0)
        item = _get_item(db, line)
        if item is None:
            log.warning("inventory_restore_missing_item", item_id=str(line.get("itemId")))
            results.append({"itemId": str(line.get("itemId")), "itemName": line.get("name"), "success": False, "error": "Item not found"})
            continue
        old_quantity = item.quantity
        # Restoring is not a restock; leave last_restocked alone
        item.quantity = (item.quantity or 0) + quantity
        db.commit()
        results.append({
            "itemId": str(item.id),
            "itemName": item.name,
            "success": True,
            "oldQuantity": old_quantity,
            "newQuantity": item.quantity,
            "restoredBy": quantity,
        })
    return {"success": True, "message": "Inventory restored successfully", "results": results}


def low_stock_alert(db: Session, item: Inventory, title: str = "Low Stock Alert") -> None:
    try:
        notify_admins(
            db,
            type="inventory_alert",
            title=title,
            message=f'Inventory item "{item.name}" is running low. Current stock: {item.quantity} {item.unit}',
            related_entity="inventory",
            entity_id=item.id,
            priority="medium",
            action_required=True,
        )
    except Exception as e:
        structlog.get_logger().warning("low_stock_notify_failed", item_id=str(item.id), error=str(e))


def consume_inventory(db: Session, booking: Booking, decrement: bool = True) -> List[Dict]:
    """
    Charge the booking's materials on completion.

    When stock cannot cover a line an insufficient-stock alert goes to the
    admins and the line is skipped. With ``decrement=False`` only the
    low-stock check runs, leaving the reservation as the single charge.
    """
    log = structlog.get_logger()
    consumed = []
    for line in booking.selected_inventory or []:
        requested = int(line.get("quantity") or 0)
        item = _get_item(db, line)
        if item is None:
            log.warning("inventory_consume_missing_item", booking_id=str(booking.id), item_id=str(line.get("itemId")))
            continue

        if decrement:
            if item.quantity < requested:
                log.warning("inventory_consume_insufficient", booking_id=str(booking.id), item_id=str(item.id), available=item.quantity, required=requested)
                try:
                    notify_admins(
                        db,
                        type="inventory_alert",
                        title="Insufficient Stock Alert",
                        message=(
                            f"Cannot complete booking {booking.id} - insufficient stock for {item.name}. "
                            f"Required: {requested}, Available: {item.quantity}"
                        ),
                        related_entity="inventory",
                        entity_id=item.id,
                        priority="high",
                        action_required=True,
                    )
                except Exception as e:
                    log.warning("insufficient_stock_notify_failed", item_id=str(item.id), error=str(e))
                continue
            item.update_quantity(requested, "subtract")
            db.commit()
            consumed.append({"itemId": str(item.id), "consumed": requested, "newQuantity": item.quantity})

        if item.quantity <= item.reorder_level:
            low_stock_alert(db, item)
    return consumed
