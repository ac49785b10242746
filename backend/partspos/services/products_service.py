# backend/partspos/services/products_service.py
"""
Products Service

Catalog CRUD plus the stock movements that are not sales: manual adjustments.
SKU and barcode are unique across the catalog.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..errors import BusinessRuleError, ConflictError, InsufficientStockError, ProductNotFoundError, ValidationError
from ..extensions import db
from ..models import InvoiceItem, Product, StockAdjustment
from ..validation import ModelValidationPolicy, enforce_non_negative, validate_payload
from .concurrency import lock_for_update, run_with_retry

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "brand", "category", "compatibility", "location", "notes",
        "cost_price_cents", "sale_price_cents", "quantity_on_hand", "reorder_level",
    },
    required_on_create={"sku", "name"},
)

STATUS_FILTERS = {"active", "archived", "all"}


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def _check_unique(patch: dict, product_id: int | None = None) -> None:
    sku = patch.get("sku")
    if sku:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if product_id:
            q = q.filter(Product.id != product_id)
        if q.first():
            raise ConflictError(f"SKU '{sku}' already exists")
    barcode = patch.get("barcode")
    if barcode:
        q = db.session.query(Product.id).filter(Product.barcode == barcode)
        if product_id:
            q = q.filter(Product.id != product_id)
        if q.first():
            raise ConflictError(f"Barcode '{barcode}' already exists")


def _validated(payload: dict, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_non_negative(patch, "cost_price_cents", "sale_price_cents", "quantity_on_hand", "reorder_level")
    if "barcode" in patch and patch["barcode"] == "":
        patch["barcode"] = None
    return patch


def list_products(
    *,
    status: str = "active",
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Catalog listing with status filter, free-text search and optional pagination."""
    if status not in STATUS_FILTERS:
        raise ValidationError(f"status must be one of: {', '.join(sorted(STATUS_FILTERS))}", "status")

    query = db.session.query(Product)
    if status == "active":
        query = query.filter(Product.is_active.is_(True))
    elif status == "archived":
        query = query.filter(Product.is_active.is_(False))

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.brand.ilike(like),
            Product.category.ilike(like),
            Product.barcode.ilike(like),
        ))

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "meta": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    return _get_product(product_id)


def create_product(payload: dict) -> Product:
    patch = _validated(payload, partial=False)

    def _op():
        _check_unique(patch)
        product = Product(**patch)
        db.session.add(product)
        db.session.flush()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    patch = _validated(payload, partial=True)
    # Stock only moves through sales, returns and adjustments
    patch.pop("quantity_on_hand", None)

    def _op():
        product = _get_product(product_id, lock=True)
        _check_unique(patch, product_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return run_with_retry(_op)


def toggle_product_status(product_id: int) -> Product:
    def _op():
        product = _get_product(product_id, lock=True)
        product.is_active = not product.is_active
        db.session.flush()
        return product

    return run_with_retry(_op)


def has_sales_history(product_id: int) -> bool:
    return db.session.query(InvoiceItem.id).filter_by(product_id=product_id).first() is not None


def delete_product(product_id: int) -> None:
    def _op():
        product = _get_product(product_id, lock=True)
        if has_sales_history(product.id):
            raise BusinessRuleError("Product has sales history; archive it instead")
        db.session.delete(product)

    run_with_retry(_op)


def bulk_delete_products(product_ids: list[int]) -> dict:
    """Delete many products; ones with sales history or missing ids are skipped."""
    def _op():
        deleted, skipped = [], []
        for pid in product_ids:
            product = db.session.get(Product, pid)
            if not product:
                skipped.append({"id": pid, "reason": "not found"})
                continue
            if has_sales_history(pid):
                skipped.append({"id": pid, "reason": "has sales history"})
                continue
            db.session.delete(product)
            deleted.append(pid)
        db.session.flush()
        return {"deleted": deleted, "skipped": skipped}

    return run_with_retry(_op)


def adjust_stock(*, product_id: int, qty_change: int, reason: str, user_id: int | None = None) -> StockAdjustment:
    """Atomically apply qty_change; the result may never go below zero."""
    if qty_change == 0:
        raise ValidationError("qty_change must not be zero", "qty_change")
    if not reason:
        raise ValidationError("reason is required", "reason")

    def _op():
        product = _get_product(product_id, lock=True)
        new_qty = product.quantity_on_hand + qty_change
        if new_qty < 0:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={"product_id": product.id, "on_hand": product.quantity_on_hand, "qty_change": qty_change},
            )
        product.quantity_on_hand = new_qty
        adjustment = StockAdjustment(
            product_id=product.id,
            qty_change=qty_change,
            quantity_after=new_qty,
            reason=reason,
            user_id=user_id,
        )
        db.session.add(adjustment)
        db.session.flush()
        return adjustment

    return run_with_retry(_op)
