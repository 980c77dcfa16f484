from servicehub.auth.security import verify_password
from servicehub.models.models import User, Service, Inventory

from scripts.seed_data import INVENTORY, SERVICES, USERS, main


def test_seed_creates_catalog_and_role_users(db):
    main()
    assert db.query(Service).count() == len(SERVICES)
    assert db.query(Inventory).count() == len(INVENTORY)
    roles = {u.role for u in db.query(User).all()}
    assert roles == {"admin", "technician", "house_owner"}
    admin = db.query(User).filter(User.username == "admin").one()
    assert verify_password("Admin123!", admin.password_hash)


def test_seed_is_idempotent(db):
    main()
    main()
    assert db.query(User).count() == len(USERS)
    assert db.query(Service).count() == len(SERVICES)
    assert db.query(Inventory).count() == len(INVENTORY)
