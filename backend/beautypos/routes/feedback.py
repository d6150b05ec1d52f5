# Overview: Flask API routes for customer feedback.

from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..services import feedback_service
from ..services.feedback_service import FeedbackError
from ..time_utils import parse_iso_date
from ..validation import ValidationError

feedback_bp = Blueprint("feedback", __name__, url_prefix="/api/feedback")


@feedback_bp.route("", methods=["GET"])
def list_feedback():
    result = feedback_service.list_feedback(
        rating=request.args.get("rating", type=int),
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result)


@feedback_bp.route("", methods=["POST"])
def submit_feedback():
    data = request.get_json(silent=True) or {}
    try:
        feedback = feedback_service.submit_feedback(data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 422
    except FeedbackError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to submit feedback")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"message": "Feedback submitted successfully", "feedback": feedback.to_dict()}), 201


@feedback_bp.route("/<int:feedback_id>", methods=["GET"])
def get_feedback(feedback_id: int):
    feedback = feedback_service.get_feedback(feedback_id)
    if not feedback:
        return jsonify({"error": "Feedback not found"}), 404
    return jsonify({"feedback": feedback.to_dict()})


@feedback_bp.route("/analytics/summary", methods=["GET"])
def feedback_analytics():
    try:
        data = feedback_service.get_analytics(
            date_from=parse_iso_date(request.args.get("date_from")),
            date_to=parse_iso_date(request.args.get("date_to")),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"data": data})
