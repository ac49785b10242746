# Overview: Flask API routes for the parts catalog and stock adjustments.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_WAREHOUSE
from ..services import auth_service, products_service
from ..validation import get_id_list, get_int, get_str

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - status: active | archived | all (default active)
    - search: matches name, sku, brand, category, barcode
    - page / per_page: optional pagination (per_page max 100)
    """
    try:
        result = products_service.list_products(
            status=request.args.get("status", "active"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        data = product.to_dict()
        data["adjustments"] = [a.to_dict() for a in product.adjustments]
        return jsonify({"product": data}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True) or {})
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True) or {})
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/toggle-status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def toggle_product_route(product_id: int):
    try:
        product = products_service.toggle_product_status(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted"}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.post("/bulk-delete")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_delete_products_route():
    try:
        data = request.get_json(silent=True) or {}
        ids = get_id_list(data)
        auth_service.verify_actor_password(g.current_user, data.get("password"))
        result = products_service.bulk_delete_products(ids)
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk delete products")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.post("/adjust-stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_WAREHOUSE)
def adjust_stock_route():
    """Body: product_id, qty_change (signed, non-zero), reason."""
    try:
        data = request.get_json(silent=True) or {}
        adjustment = products_service.adjust_stock(
            product_id=get_int(data, "product_id"),
            qty_change=get_int(data, "qty_change"),
            reason=get_str(data, "reason", required=True, max_length=255),
            user_id=g.current_user.id,
        )
        return jsonify({
            "adjustment": adjustment.to_dict(),
            "product": adjustment.product.to_dict(),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"message": "Internal server error"}), 500
