from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import pytest
import requests

from pbd import create_app
from pbd.config import TestingConfig
from pbd.extensions import db
from pbd.gateways import (
    DonationLookup,
    DonationOutcome,
    DonationRecord,
    FundraiserPage,
    GatewayClient,
    GatewayRegistry,
    GatewaySettings,
    OrganizationDetails,
    format_amount,
)
from pbd.models import DonationRequest, DonationStatus, Platform, utcnow


# ----------------------------
# Gateway double
# ----------------------------
class FakeGateway(GatewayClient):
    """In-memory JustGiving stand-in, registered through the normal registry."""

    platform = Platform.JUSTGIVING
    supports_reconciliation = True

    def __init__(self) -> None:
        super().__init__(
            GatewaySettings(
                platform=Platform.JUSTGIVING,
                api_key="test-app-id",
                api_url="https://api.justgiving.test",
                checkout_url="https://link.justgiving.test",
                return_url="https://pbd.test",
                currency="GBP",
            ),
            session=requests.Session(),
        )
        self.organizations: Dict[str, Union[OrganizationDetails, Exception]] = {
            "2050": OrganizationDetails(organization_id="2050", name="Great Ormond Street Hospital Charity"),
            "183092": OrganizationDetails(organization_id="183092", name="Cancer Research UK"),
        }
        self.donations: Dict[str, Union[DonationLookup, Exception]] = {}
        self.search_results: List[OrganizationDetails] = []
        self.fundraiser_results: List[FundraiserPage] = []
        self.lookups: List[str] = []
        self.org_lookups: List[str] = []

    # helpers for tests
    def accept(self, reference: str, donation_id: str) -> None:
        self.donations[reference] = self._found(reference, donation_id, DonationOutcome.ACCEPTED)

    def reject(self, reference: str, donation_id: str) -> None:
        self.donations[reference] = self._found(reference, donation_id, DonationOutcome.REJECTED)

    def still_pending(self, reference: str, donation_id: str) -> None:
        self.donations[reference] = self._found(reference, donation_id, DonationOutcome.PENDING)

    @staticmethod
    def _found(reference: str, donation_id: str, status: DonationOutcome) -> DonationLookup:
        return DonationLookup(
            found=True,
            donation=DonationRecord(donation_id=donation_id, reference=reference, status=status),
        )

    # GatewayClient
    def validate_organization_id(self, organization_id: str) -> bool:
        return str(organization_id).isdigit() and int(organization_id) > 0

    def lookup_organization(self, organization_id: str) -> Optional[OrganizationDetails]:
        self.org_lookups.append(organization_id)
        found = self.organizations.get(str(organization_id))
        if isinstance(found, Exception):
            raise found
        return found

    def search_organizations(self, query: str, max_results: int = 20) -> List[OrganizationDetails]:
        return self.search_results[:max_results]

    def search_fundraisers(self, query: str, max_results: int = 20) -> List[FundraiserPage]:
        return self.fundraiser_results[:max_results]

    def get_donation_by_reference(self, reference: str) -> DonationLookup:
        self.lookups.append(reference)
        found = self.donations.get(reference, DonationLookup.not_found())
        if isinstance(found, Exception):
            raise found
        return found

    def build_donation_url(self, organization_id: str, amount: Decimal, reference: str, **_: Any) -> str:
        return (
            f"{self.settings.checkout_url}/v1/charity/donate/charityId/{organization_id}"
            f"?donationValue={format_amount(amount)}&currency=GBP&reference={reference}"
        )


# ----------------------------
# HTTP doubles for adapter tests
# ----------------------------
class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, *responses: Union[FakeResponse, Exception]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params: Optional[dict] = None, timeout: Optional[float] = None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class Clock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ----------------------------
# Fixtures
# ----------------------------
@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def registry(fake_gateway: FakeGateway) -> GatewayRegistry:
    return GatewayRegistry([fake_gateway])


@pytest.fixture()
def app(registry: GatewayRegistry):
    app = create_app(TestingConfig, gateway_registry=registry)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def clock() -> Clock:
    return Clock()


_ref_counter = {"n": 0}


@pytest.fixture()
def make_request(app):
    """Insert a DonationRequest row directly, bypassing the creator."""

    def _make(**overrides: Any) -> DonationRequest:
        _ref_counter["n"] += 1
        now = overrides.pop("now", None) or utcnow()
        fields: Dict[str, Any] = {
            "reference_id": f"PD-JG-{_ref_counter['n']:016X}",
            "donor_id": "donor-1",
            "fundraiser_id": "fundraiser-1",
            "service_id": "service-1",
            "platform": Platform.JUSTGIVING,
            "organization_id": "2050",
            "organization_name": "Great Ormond Street Hospital Charity",
            "donation_amount": Decimal("150.00"),
            "currency": "GBP",
            "donation_url": "https://link.justgiving.test/v1/charity/donate/charityId/2050",
            "status": DonationStatus.PENDING,
            "timeout_at": now + timedelta(minutes=30),
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        req = DonationRequest(**fields)
        db.session.add(req)
        db.session.commit()
        return req

    return _make
