"""Seeds an admin account and a few products with opening balances."""
import os

from database import SessionLocal, init_db
from models.product import Product, QuantityType
from models.users import User
from services.ledger import LedgerService
from utils.hashing import get_password_hash

# Configuration
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")
SAMPLE_PRODUCTS = [
    # code, description, quantity type, price, opening stock
    (1001, "Harina 000 x 1kg", QuantityType.UNITS, 950.0, 120),
    (1002, "Azucar x 1kg", QuantityType.UNITS, 1100.0, 80),
    (2001, "Yerba mate x 500g", QuantityType.BOXES, 2300.0, 24),
    (3001, "Queso cremoso", QuantityType.KG, 6400.0, 15),
]
# End Configuration


def seed():
    init_db()
    session = SessionLocal()
    try:
        # Ensure admin user exists
        if not session.query(User).filter(User.email == ADMIN_EMAIL).first():
            session.add(User(email=ADMIN_EMAIL, password_hash=get_password_hash(ADMIN_PASSWORD), role="admin"))
            session.commit()
            print(f"Created admin user {ADMIN_EMAIL}")

        ledger = LedgerService(session)
        for code, description, quantity_type, price, stock in SAMPLE_PRODUCTS:
            if session.query(Product).filter(Product.code == code).first():
                print(f"Product {code} already exists, skipping")
                continue
            ledger.create_product(code, description, quantity_type, price, initial_stock=stock)
            print(f"Created product {code} with opening stock {stock}")
    finally:
        session.close()


if __name__ == "__main__":
    seed()
