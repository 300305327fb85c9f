"""Request helpers shared by the JSON blueprints."""

import math

from flask import current_app, request

from invoicely.errors import ValidationError

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def json_body():
    """The request's JSON object. Raises ValidationError if it isn't one."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.")


def paginate(query, serialize):
    """Apply ?page=&limit= to ``query``. Returns the list response body."""
    page = max(1, _int_arg("page", 1))
    limit = min(MAX_PAGE_SIZE, max(1, _int_arg("limit", DEFAULT_PAGE_SIZE)))

    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [serialize(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


def payment_gateway():
    return current_app.extensions["payment_gateway"]


def notifier():
    return current_app.extensions["notifier"]
