"""
JustGiving adapter
------------------
All HTTP interaction with the JustGiving API lives here. Paths are rooted at
``/{appId}/v1``; the app id doubles as the API key.

The donation-by-reference endpoint is the reconciliation primitive: a 404
(or an empty ``donations`` envelope) means JustGiving has not recorded the
donation yet, which is not an error.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from pbd.errors import GatewayResponseError
from pbd.models.donation_request import Platform

from .base import (
    DonationLookup,
    DonationOutcome,
    DonationRecord,
    FundraiserPage,
    GatewayClient,
    OrganizationDetails,
    format_amount,
    normalize_locale,
    parse_decimal,
)

log = logging.getLogger(__name__)

# Substituted by JustGiving with the real donation id on the exit redirect.
DONATION_ID_PLACEHOLDER = "JUSTGIVING-DONATION-ID"

_STATUS_MAP = {
    "accepted": DonationOutcome.ACCEPTED,
    "pending": DonationOutcome.PENDING,
    "rejected": DonationOutcome.REJECTED,
}

_CHARITY_ID_RE = re.compile(r"^\d+$")


def _str_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class JustGivingClient(GatewayClient):
    platform = Platform.JUSTGIVING
    supports_reconciliation = True

    def _path(self, endpoint: str) -> str:
        return f"/{self.settings.api_key}/v1{endpoint}"

    def validate_organization_id(self, organization_id: str) -> bool:
        s = str(organization_id or "").strip()
        return bool(_CHARITY_ID_RE.match(s)) and int(s) > 0

    # ---- charities -------------------------------------------------------
    def lookup_organization(self, organization_id: str) -> Optional[OrganizationDetails]:
        data = self._get_json(self._path(f"/charity/{quote(str(organization_id), safe='')}"))
        if data is None:
            log.info("JustGiving charity %s not found", organization_id)
            return None
        if not isinstance(data, dict):
            raise GatewayResponseError("JustGiving charity payload is not an object")
        return self._organization(data, fallback_id=str(organization_id))

    def search_organizations(self, query: str, max_results: int = 20) -> List[OrganizationDetails]:
        data = self._get_json(self._path("/charity/search"), params={"q": query, "pageSize": int(max_results)})
        if not data:
            return []
        results = data.get("charitySearchResults") if isinstance(data, dict) else None
        return [self._organization(item) for item in (results or []) if isinstance(item, dict)]

    @staticmethod
    def _organization(data: Dict[str, Any], fallback_id: str = "") -> OrganizationDetails:
        return OrganizationDetails(
            organization_id=str(data.get("charityId") or fallback_id),
            name=str(data.get("name") or "").strip(),
            description=_str_or_none(data.get("description")),
            logo_url=_str_or_none(data.get("logoAbsoluteUrl")),
            category=_str_or_none(data.get("subCategory")),
            website=_str_or_none(data.get("website")),
            profile_url=_str_or_none(data.get("profilePageUrl")),
            registration_number=_str_or_none(data.get("registeredCharityNumber")),
            country=_str_or_none(data.get("country")),
        )

    # ---- fundraising pages ----------------------------------------------
    def search_fundraisers(self, query: str, max_results: int = 20) -> List[FundraiserPage]:
        data = self._get_json(self._path("/fundraising/search"), params={"q": query, "pageSize": int(max_results)})
        if not data or not isinstance(data, dict):
            return []
        pages: List[FundraiserPage] = []
        for item in data.get("SearchResults") or []:
            if not isinstance(item, dict):
                continue
            page_url = str(item.get("PageUrl") or "")
            owner = str(item.get("PageOwner") or "")
            charity_id = _str_or_none(item.get("CharityId"))
            event_name = _str_or_none(item.get("EventName"))
            pages.append(
                FundraiserPage(
                    title=str(item.get("PageName") or ""),
                    short_name=page_url.rstrip("/").split("/")[-1] if page_url else "",
                    url=page_url,
                    owner=owner,
                    organization_id=charity_id,
                    event_id=_str_or_none(item.get("EventId")),
                    event_name=event_name,
                    raised_amount=parse_decimal(item.get("RaisedAmount")),
                    target_amount=parse_decimal(item.get("TargetAmount")),
                    summary=event_name or f"Supporting charity ID {charity_id}",
                )
            )
        return pages

    # ---- donations -------------------------------------------------------
    def get_donation_by_reference(self, reference: str) -> DonationLookup:
        data = self._get_json(self._path(f"/donation/ref/{quote(reference, safe='')}"))
        if data is None:
            log.info("JustGiving donation %s not found yet (likely still pending)", reference)
            return DonationLookup.not_found()
        if not isinstance(data, dict):
            raise GatewayResponseError("JustGiving donation payload is not an object")

        donations = data.get("donations")
        if not isinstance(donations, list):
            raise GatewayResponseError(
                "JustGiving donation payload missing 'donations' list",
                details=sorted(data.keys())[:20],
            )
        if not donations:
            log.info("JustGiving returned no donations for %s", reference)
            return DonationLookup.not_found()

        return DonationLookup(found=True, donation=self._donation(donations[0], reference))

    @staticmethod
    def _donation(item: Dict[str, Any], reference: str) -> DonationRecord:
        donation_id = _str_or_none(item.get("id"))
        if not donation_id:
            raise GatewayResponseError("JustGiving donation record has no id")
        raw_status = str(item.get("status") or "")
        return DonationRecord(
            donation_id=donation_id,
            reference=str(item.get("donationRef") or reference),
            status=_STATUS_MAP.get(raw_status.strip().lower(), DonationOutcome.UNKNOWN),
            raw_status=raw_status,
            amount=parse_decimal(item.get("amount")),
            currency=_str_or_none(item.get("currencyCode")),
            donor_name=_str_or_none(item.get("donorDisplayName")) or "Anonymous",
            donation_date=_str_or_none(item.get("donationDate")),
            organization_id=_str_or_none(item.get("charityId")),
        )

    # ---- redirect --------------------------------------------------------
    def build_donation_url(
        self,
        organization_id: str,
        amount: Decimal,
        reference: str,
        *,
        locale: str = "en",
    ) -> str:
        s = self.settings
        exit_url = f"{s.return_url}/{normalize_locale(locale)}/donation-success?jgDonationId={DONATION_ID_PLACEHOLDER}"
        params = [
            ("donationValue", format_amount(amount)),
            ("currency", s.currency),
            ("exiturl", exit_url),
            ("reference", reference),
            ("skipGiftAid", "true"),
        ]
        return f"{s.checkout_url}/v1/charity/donate/charityId/{organization_id}?{urlencode(params)}"
