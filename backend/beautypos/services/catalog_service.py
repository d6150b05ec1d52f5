# backend/beautypos/services/catalog_service.py
"""
Catalog Service - products, categories and stock

Stock rules:
- stock_quantity never goes negative. Decrements are conditional UPDATEs
  (`stock_quantity >= qty`), so a lost race fails instead of overselling.
- Every stock change appends a StockMovement row in the same DB transaction.
- Products are deactivated, never deleted.
"""
from __future__ import annotations

import logging

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, StockMovement
from ..errors import InsufficientStockError
from ..validation import ConflictError, ValidationError
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .pagination import paginate

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "sku", "barcode", "name", "description", "image_url", "category_id",
    "price_cents", "cost_cents", "stock_quantity", "min_stock_level", "is_active",
}

STOCK_ADJUSTMENT_TYPES = ("in", "out", "adjustment")


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def get_product(product_id: int, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.first()


def current_stock(product_id: int) -> int:
    return int(
        db.session.query(Product.stock_quantity).filter_by(id=product_id).scalar() or 0
    )


def decrement_stock(
    product: Product,
    quantity: int,
    *,
    user_id: int | None = None,
    reference_number: str | None = None,
) -> StockMovement:
    """
    Remove `quantity` units for a sale. Caller owns the transaction (no commit).

    Raises InsufficientStockError when fewer than `quantity` units remain at
    the moment of the UPDATE.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(product, available=current_stock(product.id), requested=quantity)

    db.session.expire(product, ["stock_quantity"])
    new_stock = product.stock_quantity

    movement = StockMovement(
        product_id=product.id,
        user_id=user_id,
        type="sale",
        quantity=quantity,
        previous_stock=new_stock + quantity,
        new_stock=new_stock,
        reason="Sale",
        reference_number=reference_number,
    )
    db.session.add(movement)
    return movement


def _apply_stock_change(
    product: Product,
    adjustment_type: str,
    quantity: int,
    *,
    reason: str,
    reference_number: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Set the new level on a locked product and append its movement. Caller commits."""
    previous = product.stock_quantity
    if adjustment_type == "in":
        new_stock = previous + quantity
        moved = quantity
    elif adjustment_type == "out":
        new_stock = max(0, previous - quantity)
        moved = previous - new_stock
    else:
        new_stock = quantity
        moved = abs(new_stock - previous)

    product.stock_quantity = new_stock
    movement = StockMovement(
        product_id=product.id,
        user_id=user_id,
        type=adjustment_type,
        quantity=moved,
        previous_stock=previous,
        new_stock=new_stock,
        reason=reason,
        reference_number=reference_number,
    )
    db.session.add(movement)
    logger.info("Stock %s for product %s: %d -> %d", adjustment_type, product.id, previous, new_stock)
    return movement


def adjust_stock(
    product_id: int,
    *,
    adjustment_type: str,
    quantity: int,
    reason: str,
    reference_number: str | None = None,
    user_id: int | None = None,
) -> Product:
    """
    Manual stock change.

    - in: add quantity
    - out: remove quantity, clamped at zero
    - adjustment: set stock to exactly quantity (recount)
    """
    if adjustment_type not in STOCK_ADJUSTMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(STOCK_ADJUSTMENT_TYPES)}")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if not reason or not reason.strip():
        raise ValidationError("reason is required")

    def _op():
        begin_write_transaction()
        product = get_product(product_id, lock=True)
        if product is None:
            raise CatalogError("Product not found")

        _apply_stock_change(
            product,
            adjustment_type,
            quantity,
            reason=reason.strip(),
            reference_number=reference_number,
            user_id=user_id,
        )
        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except CatalogError:
        db.session.rollback()
        raise


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    active_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.barcode.ilike(like),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page)


def find_by_code(code: str) -> Product | None:
    """Scanner lookup: barcode first, then SKU. Active products only."""
    code = (code or "").strip()
    if not code:
        return None
    product = db.session.query(Product).filter_by(barcode=code, is_active=True).first()
    if product is None:
        product = db.session.query(Product).filter_by(sku=code, is_active=True).first()
    return product


def _ensure_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.query(Category.id).filter_by(id=category_id).scalar() is None:
        raise ValidationError("category_id does not exist")


def _commit_product(product: Product) -> Product:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with this SKU or barcode already exists")
    return product


def create_product(patch: dict) -> Product:
    """Insert a product; opening stock is recorded as an `in` movement."""
    _ensure_category(patch.get("category_id"))
    product = Product()
    for key, value in patch.items():
        if key in PRODUCT_MUTABLE_FIELDS and key != "stock_quantity":
            setattr(product, key, value)
    product.stock_quantity = 0
    db.session.add(product)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with this SKU or barcode already exists")

    opening_stock = patch.get("stock_quantity") or 0
    if opening_stock > 0:
        _apply_stock_change(
            product,
            "in",
            opening_stock,
            reason="Initial stock",
            reference_number=f"INIT-{product.sku}",
        )
    return _commit_product(product)


def update_product(product_id: int, patch: dict) -> Product | None:
    """
    Edit product fields under the write lock.

    A changed stock_quantity is applied as an `adjustment` movement against
    the locked row, never as a blind overwrite.
    """
    fields = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS and k != "stock_quantity"}
    new_stock = patch.get("stock_quantity")

    def _op():
        begin_write_transaction()
        product = get_product(product_id, lock=True)
        if product is None:
            db.session.rollback()
            return None
        if "category_id" in fields:
            _ensure_category(fields["category_id"])
        for key, value in fields.items():
            setattr(product, key, value)
        if new_stock is not None and new_stock != product.stock_quantity:
            _apply_stock_change(product, "adjustment", new_stock, reason="Manual edit from products page")
        return _commit_product(product)

    try:
        return run_with_retry(_op)
    except (ValidationError, ConflictError):
        db.session.rollback()
        raise


def deactivate_product(product_id: int) -> Product | None:
    product = get_product(product_id)
    if product is None:
        return None
    product.is_active = False
    db.session.commit()
    return product


def get_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(Product.stock_quantity <= Product.min_stock_level)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )


def list_categories(active_only: bool = False) -> list[Category]:
    query = db.session.query(Category)
    if active_only:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name.asc()).all()


def _commit_category(category: Category) -> Category:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A category with this name already exists")
    return category


def get_category(category_id: int) -> Category | None:
    return db.session.query(Category).filter_by(id=category_id).first()


def create_category(patch: dict) -> Category:
    category = Category(**patch)
    db.session.add(category)
    return _commit_category(category)


def update_category(category_id: int, patch: dict) -> Category | None:
    category = get_category(category_id)
    if category is None:
        return None
    for key, value in patch.items():
        setattr(category, key, value)
    return _commit_category(category)


def delete_category(category_id: int) -> bool:
    """Hard delete. Refused while any product, active or not, still points at it."""
    category = get_category(category_id)
    if category is None:
        return False
    product_count = db.session.query(Product.id).filter_by(category_id=category_id).count()
    if product_count:
        raise CatalogError(
            "Cannot delete category with existing products",
            details={"category_id": category_id, "products": product_count},
        )
    db.session.delete(category)
    db.session.commit()
    return True
