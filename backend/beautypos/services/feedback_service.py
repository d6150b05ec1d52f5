# Overview: Customer feedback collection and summary analytics.

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Feedback, Transaction
from ..time_utils import business_date
from ..validation import ValidationError, is_valid_email
from .pagination import paginate

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


class FeedbackError(Exception):
    """Raised for feedback operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def submit_feedback(data: dict) -> Feedback:
    """
    Record a rating for a committed transaction.

    Required: transaction_id, customer_name, customer_email, rating (1-5).
    """
    missing = [k for k in ("transaction_id", "customer_name", "customer_email", "rating") if data.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    rating = data["rating"]
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")

    email = str(data["customer_email"]).strip()
    if not is_valid_email(email):
        raise ValidationError("customer_email must be a valid email address")

    name = str(data["customer_name"]).strip()
    if len(name) > 255:
        raise ValidationError("customer_name exceeds max length 255")

    comment = data.get("comment")
    if comment is not None:
        comment = str(comment).strip() or None
    if comment and len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"comment exceeds max length {MAX_COMMENT_LENGTH}")

    txn = db.session.query(Transaction).filter_by(id=data["transaction_id"]).first()
    if txn is None:
        raise FeedbackError("Transaction not found", details={"transaction_id": data["transaction_id"]})

    feedback = Feedback(
        transaction_id=txn.id,
        customer_name=name,
        customer_email=email,
        rating=rating,
        comment=comment,
    )
    db.session.add(feedback)
    db.session.commit()
    logger.info("Feedback %s recorded for %s (rating %d)", feedback.id, txn.transaction_number, rating)
    return feedback


def get_feedback(feedback_id: int) -> Feedback | None:
    return db.session.query(Feedback).filter_by(id=feedback_id).first()


def list_feedback(
    *,
    rating: int | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Feedback)
    if rating:
        query = query.filter(Feedback.rating == rating)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Feedback.customer_email.ilike(like),
            Feedback.customer_name.ilike(like),
            Feedback.comment.ilike(like),
        ))
    query = query.order_by(Feedback.created_at.desc(), Feedback.id.desc())
    return paginate(query, page, per_page)


def get_analytics(date_from: date | None = None, date_to: date | None = None) -> dict:
    """Rating summary over [date_from, date_to] inclusive; defaults to the last 30 days."""
    date_to = date_to or business_date()
    date_from = date_from or (date_to - timedelta(days=30))
    if date_from > date_to:
        raise ValidationError("date_from must be on or before date_to")

    start = datetime.combine(date_from, time.min)
    end = datetime.combine(date_to + timedelta(days=1), time.min)
    in_range = (Feedback.created_at >= start, Feedback.created_at < end)

    total, average = (
        db.session.query(func.count(Feedback.id), func.avg(Feedback.rating))
        .filter(*in_range)
        .one()
    )

    counts = dict(
        db.session.query(Feedback.rating, func.count(Feedback.id))
        .filter(*in_range)
        .group_by(Feedback.rating)
        .all()
    )
    distribution = {str(r): int(counts.get(r, 0)) for r in (5, 4, 3, 2, 1)}

    recent = (
        db.session.query(Feedback)
        .filter(*in_range)
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        .limit(10)
        .all()
    )

    return {
        "total_feedback": int(total or 0),
        "average_rating": round(float(average or 0), 1),
        "rating_distribution": distribution,
        "recent_feedback": [f.to_dict() for f in recent],
        "date_range": {"from": date_from.isoformat(), "to": date_to.isoformat()},
    }
