"""Reports blueprint — /api/reports/transactions

Requires the reporting feature; ?format=csv also requires export_data.
"""

import math

from flask import Blueprint, Response, g, jsonify, request

from invoicely.blueprints.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from invoicely.decorators import feature_required, tenant_required
from invoicely.errors import ValidationError
from invoicely.services import report_service
from invoicely.services.entitlement_service import require_feature
from invoicely.utils import parse_datetime, utcnow

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.route("/transactions")
@tenant_required
@feature_required("reporting")
def transactions():
    try:
        start = parse_datetime(request.args.get("start_date"), "start_date")
        end = parse_datetime(request.args.get("end_date"), "end_date")
        page = max(1, int(request.args.get("page", 1)))
        limit = min(MAX_PAGE_SIZE, max(1, int(request.args.get("limit", DEFAULT_PAGE_SIZE))))
    except ValueError as e:
        raise ValidationError(str(e))

    txn_type = request.args.get("type")
    if txn_type and txn_type not in report_service.TRANSACTION_TYPES:
        raise ValidationError(
            f"type must be one of {list(report_service.TRANSACTION_TYPES)}."
        )

    rows = report_service.list_transactions(
        g.tenant_id,
        start=start,
        end=end,
        types=(txn_type,) if txn_type else None,
        customer_id=request.args.get("customer_id"),
    )

    if request.args.get("format") == "csv":
        require_feature(g.tenant_id, "export_data")
        filename = f"transactions_{utcnow().strftime('%Y%m%d_%H%M%S')}.csv"
        return Response(
            report_service.to_csv(rows),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    total = len(rows)
    page_rows = rows[(page - 1) * limit: page * limit]
    return jsonify({
        "data": [report_service.serialize(row) for row in page_rows],
        "summary": report_service.summarize(rows),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    })
