# Overview: Flask API routes for checkout and transaction history; parses input and returns JSON responses.

# backend/beautypos/routes/transactions.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import CheckoutError
from ..services import transaction_service, reporting_service
from ..time_utils import business_date, parse_iso_date
from ..validation import ValidationError


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


@transactions_bp.post("")
def create_transaction_route():
    """
    Checkout: validate the cart, price it and commit the sale.

    Body: items[{product_id, quantity, unit_price}], payment_method,
    amount_paid, discount_id?, customer_name?, customer_email?, user_id?
    """
    try:
        checkout_request = transaction_service.checkout_request_from_payload(request.get_json(silent=True))
        txn = transaction_service.checkout(checkout_request)
        return jsonify({
            "message": "Transaction created successfully",
            "transaction": txn.to_dict(),
        }), 201

    except CheckoutError as e:
        current_app.logger.info("Checkout rejected (%s): %s", e.code, e)
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
def list_transactions_route():
    """
    List transactions, newest first.

    Query params: search, date_from, date_to (YYYY-MM-DD), page, per_page
    """
    try:
        result = transaction_service.list_transactions(
            search=request.args.get("search"),
            date_from=_date_arg("date_from"),
            date_to=_date_arg("date_to"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    txn = transaction_service.get_transaction(transaction_id)
    if not txn:
        return jsonify({"error": "Transaction not found"}), 404
    return jsonify({"transaction": txn.to_dict()}), 200


@transactions_bp.get("/reports/daily")
def daily_sales_route():
    try:
        day = _date_arg("date") or business_date()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reporting_service.get_daily_sales(day)), 200


@transactions_bp.get("/reports/monthly")
def monthly_report_route():
    today = business_date()
    month = request.args.get("month", default=today.month, type=int)
    year = request.args.get("year", default=today.year, type=int)
    try:
        return jsonify(reporting_service.get_monthly_report(year, month)), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
