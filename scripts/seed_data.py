"""
Seed the local database with the service catalog, stock items and one
account per role (admin, technicians, house owner).

Usage:
  python scripts/seed_data.py

Idempotent: users are matched on username or email, services on name and
inventory items on (name, category). Existing rows are updated in place.
"""

from servicehub.db import SessionLocal, init_db
from servicehub.models.models import User, Service, Inventory, utcnow
from servicehub.auth.security import get_password_hash


USERS = [
    {"username": "admin", "email": "admin@servicehub.lk", "password": "Admin123!", "mobile": "+94771000001", "role": "admin"},
    {
        "username": "john_plumber",
        "email": "john.plumber@servicehub.lk",
        "password": "Tech123!",
        "mobile": "+94771000002",
        "role": "technician",
        "first_name": "John",
        "last_name": "Perera",
        "specialties": ["Plumbing", "Water Heater Repair", "Pipe Installation"],
    },
    {
        "username": "sarah_electrician",
        "email": "sarah.electrician@servicehub.lk",
        "password": "Tech123!",
        "mobile": "+94771000003",
        "role": "technician",
        "first_name": "Sarah",
        "last_name": "Fernando",
        "specialties": ["Electrical Installation", "Wiring", "Lighting"],
    },
    {"username": "mike_owner", "email": "mike@home.lk", "password": "Owner123!", "mobile": "+94771000004", "role": "house_owner"},
]

SERVICES = [
    {
        "name": "Plumbing Repair",
        "category": "plumbing",
        "description": "Leak fixes, pipe repairs, faucet installation and drain cleaning.",
        "base_price": 2500,
        "estimated_duration": "2-4 hours",
        "features": ["24/7 Emergency Service", "Licensed Plumbers", "Warranty Included"],
        "requirements": ["Access to water shut-off", "Clear work area"],
    },
    {
        "name": "Electrical Installation",
        "category": "electrician",
        "description": "Wiring, outlet installation, lighting setup and electrical troubleshooting.",
        "base_price": 3000,
        "estimated_duration": "3-5 hours",
        "features": ["Certified Electricians", "Safety Compliant"],
        "requirements": ["Power access", "Clear work area"],
    },
    {
        "name": "House Cleaning",
        "category": "cleaning",
        "description": "Deep cleaning, regular maintenance and post-construction cleanup.",
        "base_price": 4000,
        "estimated_duration": "4-6 hours",
        "features": ["Eco-friendly Products", "Professional Equipment"],
        "requirements": ["Access to all rooms"],
    },
    {
        "name": "Carpentry Work",
        "category": "carpentry",
        "description": "Furniture repair, cabinet installation, door fitting and woodwork.",
        "base_price": 2800,
        "estimated_duration": "3-6 hours",
        "features": ["Custom Design", "Quality Materials"],
        "requirements": ["Work space access"],
    },
    {
        "name": "Interior Painting",
        "category": "painting",
        "description": "Interior painting with color consultation and surface preparation.",
        "base_price": 5000,
        "estimated_duration": "6-8 hours",
        "features": ["Color Consultation", "Surface Prep"],
        "requirements": ["Furniture moved", "Ventilation access"],
    },
    {
        "name": "Garden Maintenance",
        "category": "gardening",
        "description": "Landscaping, plant maintenance, irrigation and seasonal cleanup.",
        "base_price": 2200,
        "estimated_duration": "2-3 hours",
        "features": ["Seasonal Care", "Plant Health"],
        "requirements": ["Garden access", "Water source"],
    },
    {
        "name": "Appliance Repair",
        "category": "appliance_repair",
        "description": "Repairs for refrigerators, washing machines, dishwashers and other appliances.",
        "base_price": 3200,
        "estimated_duration": "2-4 hours",
        "features": ["Same Day Service", "Parts Warranty"],
        "requirements": ["Appliance access", "Model information"],
    },
]

PLUMBING_SUPPLIER = {"name": "AquaParts Lanka", "contact": "+94112000100", "email": "sales@aquaparts.lk"}
ELECTRICAL_SUPPLIER = {"name": "ElectroSupply Co", "contact": "+94112000200", "email": "info@electrosupply.lk"}

INVENTORY = [
    {"name": "PVC Pipe 1/2 inch", "category": "plumbing", "price": 350, "cost": 200, "quantity": 120, "unit": "meter", "reorder_level": 20, "supplier": PLUMBING_SUPPLIER, "location": "Warehouse A"},
    {"name": "Ball Valve", "category": "plumbing", "price": 900, "cost": 520, "quantity": 40, "unit": "piece", "reorder_level": 8, "supplier": PLUMBING_SUPPLIER, "location": "Warehouse A"},
    {"name": "Teflon Tape", "category": "plumbing", "price": 120, "cost": 50, "quantity": 200, "unit": "roll", "reorder_level": 30, "supplier": PLUMBING_SUPPLIER, "location": "Warehouse A"},
    {"name": "Circuit Breaker 20A", "category": "electrical", "price": 2400, "cost": 1500, "quantity": 25, "unit": "piece", "reorder_level": 8, "supplier": ELECTRICAL_SUPPLIER, "location": "Warehouse B"},
    {"name": "LED Light Bulbs Pack", "category": "electrical", "price": 1800, "cost": 1000, "quantity": 50, "unit": "pack", "reorder_level": 12, "supplier": ELECTRICAL_SUPPLIER, "location": "Warehouse B"},
    {"name": "Wire Connectors Assorted", "category": "electrical", "price": 850, "cost": 450, "quantity": 60, "unit": "pack", "reorder_level": 10, "supplier": ELECTRICAL_SUPPLIER, "location": "Warehouse B"},
    {"name": "All-Purpose Cleaner", "category": "cleaning", "price": 650, "cost": 300, "quantity": 80, "unit": "liter", "reorder_level": 15},
    {"name": "Wood Screws Box", "category": "carpentry", "price": 700, "cost": 350, "quantity": 45, "unit": "box", "reorder_level": 10},
    {"name": "Interior Emulsion Paint", "category": "painting", "price": 4200, "cost": 2900, "quantity": 30, "unit": "liter", "reorder_level": 6},
    {"name": "Garden Hose 15m", "category": "garden", "price": 3100, "cost": 1900, "quantity": 12, "unit": "piece", "reorder_level": 4},
]


def ensure_user(session, username: str, email: str, password: str, **fields) -> User:
    user = session.query(User).filter((User.username == username) | (User.email == email)).first()
    if user:
        for k, v in fields.items():
            setattr(user, k, v)
        # Keep an existing password
        if not user.password_hash:
            user.password_hash = get_password_hash(password)
        session.flush()
        return user
    user = User(
        username=username,
        email=email,
        password_hash=get_password_hash(password),
        is_active=True,
        is_email_verified=True,
        is_mobile_verified=True,
        addresses=[],
        **fields,
    )
    session.add(user)
    session.flush()
    return user


def ensure_service(session, name: str, **fields) -> Service:
    service = session.query(Service).filter(Service.name == name).first()
    if service is None:
        service = Service(name=name, is_active=True, image_url="")
        session.add(service)
    for k, v in fields.items():
        setattr(service, k, v)
    session.flush()
    return service


def ensure_item(session, name: str, category: str, **fields) -> Inventory:
    item = session.query(Inventory).filter(Inventory.name == name, Inventory.category == category).first()
    if item is None:
        item = Inventory(name=name, category=category, last_restocked=utcnow())
        session.add(item)
    for k, v in fields.items():
        setattr(item, k, v)
    session.flush()
    return item


def main() -> None:
    init_db()

    session = SessionLocal()
    try:
        for row in USERS:
            row = dict(row)
            ensure_user(session, row.pop("username"), row.pop("email"), row.pop("password"), **row)
        for row in SERVICES:
            row = dict(row)
            ensure_service(session, row.pop("name"), **row)
        for row in INVENTORY:
            row = dict(row)
            ensure_item(session, row.pop("name"), row.pop("category"), **row)

        session.commit()
        print(f"Seed completed: {len(USERS)} users, {len(SERVICES)} services, {len(INVENTORY)} inventory items upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
