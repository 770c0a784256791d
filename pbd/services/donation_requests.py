"""
Donation request creation.

Validates input, resolves the organization through the charity cache, mints
a reference, builds the processor redirect URL and persists one pending row.
Either exactly one row is written or none.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from pbd.errors import NotFoundError, ReferenceCollisionError, ValidationError
from pbd.gateways import GatewayRegistry, normalize_locale
from pbd.models import DonationRequest, DonationStatus, Platform, utcnow

from .charities import CharityCache
from .references import ReferenceGenerator
from .store import DonationRequestStore

log = logging.getLogger(__name__)

MAX_AMOUNT = Decimal("99999999.99")


def _pick(data: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        v = data.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def parse_amount(raw: Any) -> Optional[Decimal]:
    """Positive, finite, capped amount at pence precision; None when invalid."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount > MAX_AMOUNT:
        return None
    amount = amount.quantize(Decimal("0.01"))
    if amount <= 0:
        return None
    return amount


@dataclass(frozen=True)
class DonationRequestInput:
    service_id: str
    donor_id: str
    fundraiser_id: str
    donation_amount: Decimal
    organization_id: str
    platform: str = Platform.JUSTGIVING
    locale: str = "en"

    @classmethod
    def from_payload(
        cls,
        data: Mapping[str, Any],
        *,
        platform: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> "DonationRequestInput":
        """Accepts camelCase (API) or snake_case keys; path values win over the body."""
        errors: List[str] = []

        service_id = _pick(data, "serviceId", "service_id")
        donor_id = _pick(data, "donorId", "donor_id", "userId")
        fundraiser_id = _pick(data, "fundraiserId", "fundraiser_id")
        org_id = str(organization_id or "").strip() or _pick(
            data, "organizationId", "organization_id", "charityId"
        )
        plat = (platform or _pick(data, "platform") or Platform.JUSTGIVING).lower()

        for name, value in (
            ("serviceId", service_id),
            ("donorId", donor_id),
            ("fundraiserId", fundraiser_id),
            ("organizationId", org_id),
        ):
            if not value:
                errors.append(name)

        amount = parse_amount(data.get("donationAmount", data.get("donation_amount")))
        if amount is None:
            errors.append("donationAmount")

        if plat not in Platform.ALL:
            errors.append("platform")

        if errors:
            raise ValidationError("Missing or invalid fields", details={"fields": errors})

        return cls(
            service_id=service_id[:64],
            donor_id=donor_id[:64],
            fundraiser_id=fundraiser_id[:64],
            donation_amount=amount,  # type: ignore[arg-type]
            organization_id=org_id[:64],
            platform=plat,
            locale=normalize_locale(_pick(data, "locale")),
        )


@dataclass(frozen=True)
class CreatedDonationRequest:
    request_id: str
    reference_id: str
    donation_url: str
    status: str
    platform: str
    organization_id: str
    organization_name: str
    donation_amount: Decimal
    currency: str
    timeout_at: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "requestId": self.request_id,
            "referenceId": self.reference_id,
            "donationUrl": self.donation_url,
            "status": self.status,
            "platform": self.platform,
            "organizationId": self.organization_id,
            "organizationName": self.organization_name,
            "donationAmount": float(self.donation_amount),
            "currency": self.currency,
            "timeoutAt": self.timeout_at.isoformat(),
        }


def _is_reference_collision(err: IntegrityError) -> bool:
    return "reference_id" in str(getattr(err, "orig", err)).lower()


class DonationRequestCreator:
    def __init__(
        self,
        store: DonationRequestStore,
        registry: GatewayRegistry,
        charities: CharityCache,
        references: Optional[ReferenceGenerator] = None,
        *,
        timeout_minutes: int = 30,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.charities = charities
        self.references = references or ReferenceGenerator()
        self.timeout = timedelta(minutes=timeout_minutes)
        self.max_attempts = max(1, int(max_attempts))
        self.clock = clock

    @classmethod
    def from_app(cls, registry: GatewayRegistry, **kwargs: Any) -> "DonationRequestCreator":
        cfg = current_app.config
        kwargs.setdefault("timeout_minutes", int(cfg.get("DONATION_TIMEOUT_MINUTES", 30)))
        kwargs.setdefault("max_attempts", int(cfg.get("REFERENCE_MAX_ATTEMPTS", 3)))
        return cls(DonationRequestStore(), registry, CharityCache.from_app(registry), **kwargs)

    def create(self, data: DonationRequestInput) -> CreatedDonationRequest:
        client = self.registry.get(data.platform)

        if not client.validate_organization_id(data.organization_id):
            raise ValidationError(
                "Invalid organization id for platform",
                details={"fields": ["organizationId"], "platform": data.platform},
            )

        charity = self.charities.get_or_sync(data.platform, data.organization_id)
        if charity is None:
            raise NotFoundError(
                "Organization not found",
                details={"platform": data.platform, "organizationId": data.organization_id},
            )

        for attempt in range(1, self.max_attempts + 1):
            reference = self.references.generate(data.platform)
            now = self.clock()
            req = DonationRequest(
                reference_id=reference,
                donor_id=data.donor_id,
                fundraiser_id=data.fundraiser_id,
                service_id=data.service_id,
                platform=data.platform,
                organization_id=data.organization_id,
                organization_name=charity.name,
                donation_amount=data.donation_amount,
                currency=client.settings.currency,
                donation_url=client.build_donation_url(
                    data.organization_id, data.donation_amount, reference, locale=data.locale
                ),
                status=DonationStatus.PENDING,
                timeout_at=now + self.timeout,
                created_at=now,
                updated_at=now,
            )
            try:
                self.store.insert(req)
            except IntegrityError as e:
                if not _is_reference_collision(e):
                    raise
                log.warning("Reference collision on %s (attempt %d/%d)", reference, attempt, self.max_attempts)
                continue

            log.info(
                "Created donation request %s ref=%s platform=%s org=%s amount=%s",
                req.id,
                reference,
                data.platform,
                data.organization_id,
                data.donation_amount,
            )
            return CreatedDonationRequest(
                request_id=req.id,
                reference_id=reference,
                donation_url=req.donation_url or "",
                status=DonationStatus.PENDING,
                platform=data.platform,
                organization_id=data.organization_id,
                organization_name=charity.name,
                donation_amount=data.donation_amount,
                currency=req.currency,
                timeout_at=now + self.timeout,
            )

        raise ReferenceCollisionError(details={"attempts": self.max_attempts})
