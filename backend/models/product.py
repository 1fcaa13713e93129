# backend/models/product.py
import enum
from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Unit in which a product's stock is counted
class QuantityType(str, enum.Enum):
    UNITS = "UNITS"
    BOXES = "BOXES"
    KG = "KG"

# Model Product
# A catalogue item with its on-hand stock. The stock column is a running total
# maintained by the ledger service: it always equals the signed sum of the
# product's active movements and is never written directly after creation.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(Integer, unique=True, nullable=False, index=True)
    description = Column(String, nullable=False)

    stock = Column(Integer, CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"), nullable=False, default=0)
    quantity_type = Column(Enum(QuantityType), nullable=False, default=QuantityType.UNITS)
    price = Column(Float, CheckConstraint("price >= 0", name="ck_products_price_non_negative"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    movements = relationship("Movement", back_populates="product")
