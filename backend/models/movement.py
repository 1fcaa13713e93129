# backend/models/movement.py
import enum
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Direction of a stock movement
class MovementType(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"

# Ledger entry recording merchandise entering or leaving stock.
# Quantity is signed: positive for INBOUND, negative for OUTBOUND.
# A voided movement (active=False) keeps its quantity and product for the record
# but no longer contributes to the product's stock.
class Movement(Base):
    __tablename__ = "movements"
    __table_args__ = (
        CheckConstraint(
            "(type = 'INBOUND' AND quantity > 0) OR (type = 'OUTBOUND' AND quantity < 0)",
            name="ck_movements_quantity_sign",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    invoice_number = Column(Integer, nullable=True)
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False, default="")

    quantity = Column(Integer, nullable=False)
    type = Column(Enum(MovementType), nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    product = relationship("Product", back_populates="movements")
