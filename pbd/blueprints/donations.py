from __future__ import annotations

from flask import Blueprint, current_app, request

from pbd.errors import ValidationError
from pbd.gateways import gateways
from pbd.models import DonationStatus, Platform
from pbd.services import (
    DonationRequestCreator,
    DonationRequestInput,
    DonationRequestStore,
    ReconciliationPoller,
    confirm_donation,
)

from .common import cron_authorized, json_error, json_ok, query_int, request_payload

bp = Blueprint("donations", __name__, url_prefix="/api")


def _create(platform=None, organization_id=None):
    data = DonationRequestInput.from_payload(
        request_payload(), platform=platform, organization_id=organization_id
    )
    created = DonationRequestCreator.from_app(gateways()).create(data)
    return json_ok(created.as_dict(), 201)


# ----------------------------
# Creation
# ----------------------------
@bp.post("/donation-requests")
def create_donation_request():
    return _create()


@bp.post("/just-giving/charity/<organization_id>")
def create_justgiving_request(organization_id: str):
    return _create(Platform.JUSTGIVING, organization_id)


@bp.post("/every-org/non-profit/<organization_id>")
def create_everyorg_request(organization_id: str):
    return _create(Platform.EVERY_ORG, organization_id)


# ----------------------------
# Lookup
# ----------------------------
@bp.get("/donation-requests/<request_id>")
def get_donation_request(request_id: str):
    req = DonationRequestStore().require(request_id)
    return json_ok({"request": req.as_dict()})


@bp.get("/donation-requests")
def list_donation_requests():
    donor_id = (request.args.get("donorId") or "").strip()
    if not donor_id:
        raise ValidationError("donorId is required", details={"fields": ["donorId"]})
    status = (request.args.get("status") or "").strip() or None
    if status and status not in DonationStatus.ALL:
        raise ValidationError("Unknown status", details={"status": status, "allowed": list(DonationStatus.ALL)})
    rows = DonationRequestStore().for_donor(donor_id, status, limit=query_int("limit", 50, hi=200))
    return json_ok({"requests": [r.as_dict() for r in rows], "count": len(rows)})


# ----------------------------
# Confirmation & reconciliation
# ----------------------------
@bp.post("/donations/confirm")
def confirm():
    data = request_payload()
    external_id = data.get("externalDonationId") or data.get("jgDonationId") or data.get("donationId")
    result = confirm_donation(str(external_id or ""))
    return json_ok(result.as_dict())


@bp.post("/donations/check")
def check_pending():
    if not cron_authorized():
        return json_error("Unauthorized", 401)
    summary = ReconciliationPoller.from_app(gateways()).run(trigger="api")
    current_app.logger.info("donations/check: %s", summary.as_dict())
    return json_ok({"success": True, **summary.as_dict()})


@bp.post("/donation-requests/<request_id>/sync")
def sync_donation_request(request_id: str):
    result = ReconciliationPoller.from_app(gateways()).reconcile_one(request_id)
    return json_ok(result)
