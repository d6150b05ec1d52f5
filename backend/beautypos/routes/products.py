# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

# backend/beautypos/routes/products.py
"""
Catalog routes.

Products are deactivated rather than deleted so committed transactions
keep resolving their line items.
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import Category, Product
from ..services import catalog_service
from ..services.catalog_service import CatalogError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_positive_int,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"sku", "name", "price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
def list_products():
    """
    Query params:
    - search: name / SKU / barcode substring
    - category_id: int
    - active_only: true|false
    - page, per_page
    """
    result = catalog_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        active_only=request.args.get("active_only", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@products_bp.get("/products/lookup/<code>")
def lookup_product(code: str):
    """Barcode scanner / SKU lookup for the cart."""
    product = catalog_service.find_by_code(code)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()})


@products_bp.get("/products/low-stock")
def low_stock_products():
    products = catalog_service.get_low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]})


@products_bp.post("/products")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"message": "Product created successfully", "product": product.to_dict()}), 201


@products_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()})


@products_bp.route("/products/<int:product_id>", methods=["PUT", "PATCH"])
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"message": "Product updated successfully", "product": product.to_dict()})


@products_bp.delete("/products/<int:product_id>")
def delete_product_route(product_id: int):
    product = catalog_service.deactivate_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"message": "Product deactivated successfully"})


@products_bp.post("/products/<int:product_id>/adjust-stock")
def adjust_stock_route(product_id: int):
    """
    Body: type (in|out|adjustment), quantity >= 1, reason, reference_number?, user_id?
    """
    data = request.get_json(silent=True) or {}
    try:
        quantity = parse_positive_int(data.get("quantity"), "quantity")
        user_id = data.get("user_id")
        if user_id is not None:
            user_id = parse_positive_int(user_id, "user_id")
        product = catalog_service.adjust_stock(
            product_id,
            adjustment_type=data.get("type"),
            quantity=quantity,
            reason=data.get("reason") or "",
            reference_number=data.get("reference_number"),
            user_id=user_id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CatalogError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Stock adjusted successfully", "product": product.to_dict()})


@products_bp.get("/categories")
def list_categories():
    active_only = request.args.get("active_only", "false").lower() == "true"
    categories = catalog_service.list_categories(active_only=active_only)
    return jsonify({"categories": [c.to_dict() for c in categories]})


@products_bp.post("/categories")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"message": "Category created successfully", "category": category.to_dict()}), 201


@products_bp.get("/categories/<int:category_id>")
def get_category_route(category_id: int):
    category = catalog_service.get_category(category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404
    data = category.to_dict()
    data["products"] = [p.to_dict() for p in category.products]
    return jsonify({"category": data})


@products_bp.route("/categories/<int:category_id>", methods=["PUT", "PATCH"])
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    if not category:
        return jsonify({"error": "Category not found"}), 404
    return jsonify({"message": "Category updated successfully", "category": category.to_dict()})


@products_bp.delete("/categories/<int:category_id>")
def delete_category_route(category_id: int):
    try:
        deleted = catalog_service.delete_category(category_id)
    except CatalogError as e:
        return jsonify({"error": str(e), "details": e.details}), 422
    if not deleted:
        return jsonify({"error": "Category not found"}), 404
    return jsonify({"message": "Category deleted successfully"})
