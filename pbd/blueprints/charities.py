from __future__ import annotations

from flask import Blueprint, request

from pbd.errors import NotFoundError, ValidationError
from pbd.gateways import gateways
from pbd.models import Platform
from pbd.services import CharityCache, parse_amount

from .common import cron_authorized, json_error, json_ok, query_int, request_payload

bp = Blueprint("charities", __name__, url_prefix="/api/charities")


def _platform() -> str:
    return (request.args.get("platform") or Platform.JUSTGIVING).strip().lower()


@bp.get("/search")
def search():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("Query parameter 'q' is required", details={"fields": ["q"]})
    limit = query_int("limit", 20, hi=50)
    results = gateways().get(_platform()).search_organizations(q, limit)
    charities = [
        {
            "organizationId": r.organization_id,
            "name": r.name,
            "description": r.description,
            "logoUrl": r.logo_url,
            "category": r.category,
        }
        for r in results
    ]
    return json_ok({"query": q, "charities": charities, "total": len(charities)})


@bp.get("/fundraisers")
def fundraisers():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("Query parameter 'q' is required", details={"fields": ["q"]})
    limit = query_int("limit", 20, hi=50)
    pages = gateways().get(_platform()).search_fundraisers(q, limit)
    results = [
        {
            "title": p.title,
            "shortName": p.short_name,
            "url": p.url,
            "owner": p.owner,
            "organizationId": p.organization_id,
            "eventName": p.event_name,
            "raisedAmount": float(p.raised_amount) if p.raised_amount is not None else None,
            "targetAmount": float(p.target_amount) if p.target_amount is not None else None,
            "summary": p.summary,
        }
        for p in pages
    ]
    return json_ok({"query": q, "fundraisers": results, "total": len(results)})


@bp.get("/cached")
def cached():
    q = request.args.get("q") or ""
    limit = query_int("limit", 20, hi=50)
    rows = CharityCache.from_app(gateways()).search_cached(q, limit)
    return json_ok(
        {
            "query": q.strip(),
            "charities": [r.to_dict() for r in rows],
            "total": len(rows),
            "source": "cache",
        }
    )


@bp.post("/populate")
def populate():
    if not cron_authorized():
        return json_error("Unauthorized", 401)
    mode = str(request_payload().get("mode") or request.args.get("mode") or "essential").strip().lower()
    summary = CharityCache.from_app(gateways()).populate(mode, platform=_platform())
    return json_ok(summary.as_dict())


@bp.get("/<organization_id>")
def get_charity(organization_id: str):
    platform = _platform()
    client = gateways().get(platform)
    if not client.validate_organization_id(organization_id):
        raise ValidationError("Invalid organization id", details={"organizationId": organization_id})
    row = CharityCache.from_app(gateways()).get_or_sync(platform, organization_id)
    if row is None:
        raise NotFoundError("Charity not found", details={"organizationId": organization_id})
    return json_ok({"charity": row.to_dict()})


@bp.post("/<organization_id>")
def charity_action(organization_id: str):
    data = request_payload()
    action = str(data.get("action") or "").strip().lower()
    platform = str(data.get("platform") or _platform()).strip().lower()
    cache = CharityCache.from_app(gateways())

    if action == "validate":
        result = cache.validate(platform, organization_id)
        return json_ok({"organizationId": organization_id, **result})

    if action == "sync":
        row = cache.force_sync(platform, organization_id)
        if row is None:
            raise NotFoundError("Charity not found", details={"organizationId": organization_id})
        return json_ok({"synced": True, "charity": row.to_dict()})

    if action == "donation-url":
        reference = str(data.get("reference") or "").strip()
        amount = parse_amount(data.get("amount"))
        missing = [n for n, ok in (("amount", amount is not None), ("reference", bool(reference))) if not ok]
        if missing:
            raise ValidationError("Missing or invalid fields", details={"fields": missing})
        url = gateways().get(platform).build_donation_url(organization_id, amount, reference)
        return json_ok({"donationUrl": url, "organizationId": organization_id, "reference": reference})

    raise ValidationError(
        "Invalid action. Supported actions: validate, sync, donation-url",
        details={"action": action or None},
    )
