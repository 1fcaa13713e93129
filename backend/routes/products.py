# backend/routes/products.py
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_db
from models.product import Product
from models.users import User
from services.ledger import LedgerService
from utils.tokenJWT import get_current_user, role_required
import schemas.product as product_schemas

router = APIRouter(prefix="/api/products", tags=["Products"])

admin_required = role_required("admin")


# =========================
# PRODUCT LIST
# =========================
@router.get("", response_model=product_schemas.ProductListPage)
def list_products(
    q: Optional[str] = Query(None, description="Search in description"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=1000),
    sort_by: str = Query("code"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Product)
    if q:
        query = query.filter(Product.description.ilike(f"%{q}%"))

    allowed = {
        "id": Product.id, "code": Product.code,
        "description": Product.description, "stock": Product.stock,
    }
    sort_col = allowed.get(sort_by.lower(), Product.code)
    query = query.order_by(sort_col.asc() if order == "asc" else sort_col.desc())

    total = query.count()
    items: List[Product] = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/code/{code}", response_model=product_schemas.ProductResponse)
def get_product_by_code(
    code: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    return LedgerService(db).get_product_by_code(code)


@router.get("/{product_id}", response_model=product_schemas.ProductResponse)
def get_product(
    product_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    return LedgerService(db).get_product(product_id)


# =========================
# CREATE
# =========================
@router.post("", response_model=product_schemas.ProductResponse, status_code=status.HTTP_201_CREATED)
def add_product(
    payload: product_schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_required),
):
    return LedgerService(db).create_product(
        code=payload.code,
        description=payload.description.strip(),
        quantity_type=payload.quantity_type,
        price=payload.price,
        initial_stock=payload.stock,
    )


# =========================
# UPDATE (catalogue fields only)
# =========================
@router.put("/{product_id}", response_model=product_schemas.ProductResponse)
def update_product(
    product_id: int,
    payload: product_schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_required),
):
    # Only fields present in the body; an explicit "price": null clears the price
    changes = {name: getattr(payload, name) for name in payload.model_fields_set}
    return LedgerService(db).update_product(product_id, changes)


# =========================
# DELETE
# =========================
@router.delete("/{product_id}")
def delete_product(
    product_id: int, db: Session = Depends(get_db), current_user: User = Depends(admin_required),
):
    LedgerService(db).delete_product(product_id)
    return {"detail": f"Product {product_id} deleted"}
