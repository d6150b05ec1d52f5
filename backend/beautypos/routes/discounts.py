# Overview: Flask API routes for discount management.

from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..models import Discount
from ..services import discount_service
from ..services.discount_service import DiscountError
from ..validation import (
    BusinessRuleError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_discount,
    validate_payload,
)

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields=set(discount_service.DISCOUNT_MUTABLE_FIELDS),
    required_on_create={"name", "type", "value", "valid_from", "valid_until"},
)

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


def _bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() in ("1", "true", "yes")


@discounts_bp.route("", methods=["GET"])
def list_discounts():
    result = discount_service.list_discounts(
        search=request.args.get("search"),
        discount_type=request.args.get("type"),
        is_active=_bool_arg("is_active"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@discounts_bp.route("/active", methods=["GET"])
def get_active_discounts():
    discounts = discount_service.get_active_discounts()
    return jsonify({"discounts": [d.to_dict() for d in discounts]})


@discounts_bp.route("", methods=["POST"])
def create_discount():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
        enforce_rules_discount(patch)
    except BusinessRuleError as e:
        return jsonify({"error": str(e)}), 422
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    discount = discount_service.create_discount(patch)
    current_app.logger.info("Created discount %s (%s)", discount.id, discount.name)
    return jsonify({"message": "Discount created successfully", "discount": discount.to_dict()}), 201


@discounts_bp.route("/<int:discount_id>", methods=["GET"])
def get_discount(discount_id: int):
    discount = discount_service.get_discount(discount_id)
    if not discount:
        return jsonify({"error": "Discount not found"}), 404
    return jsonify({"discount": discount.to_dict()})


@discounts_bp.route("/<int:discount_id>", methods=["PUT", "PATCH"])
def update_discount(discount_id: int):
    discount = discount_service.get_discount(discount_id)
    if not discount:
        return jsonify({"error": "Discount not found"}), 404

    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=True)
        enforce_rules_discount(patch, current=discount)
    except BusinessRuleError as e:
        return jsonify({"error": str(e)}), 422
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    discount = discount_service.update_discount(discount_id, patch)
    return jsonify({"message": "Discount updated successfully", "discount": discount.to_dict()})


@discounts_bp.route("/<int:discount_id>", methods=["DELETE"])
def delete_discount(discount_id: int):
    try:
        deleted = discount_service.delete_discount(discount_id)
    except DiscountError as e:
        return jsonify({"error": str(e), "details": e.details}), 422
    if not deleted:
        return jsonify({"error": "Discount not found"}), 404
    return jsonify({"message": "Discount deleted successfully"})
