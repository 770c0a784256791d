from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from pbd.errors import GatewayResponseError, GatewayTransportError, PlatformNotSupportedError
from pbd.gateways import (
    DonationOutcome,
    EveryOrgClient,
    GatewaySettings,
    JustGivingClient,
    build_registry,
    format_amount,
)
from pbd.models import Platform

from .conftest import FakeResponse, FakeSession

JG_SETTINGS = GatewaySettings(
    platform=Platform.JUSTGIVING,
    api_key="app123",
    api_url="https://api.justgiving.test",
    checkout_url="https://link.justgiving.test",
    return_url="https://pbd.test",
    currency="GBP",
    timeout=5.0,
    max_retries=0,
)

EO_SETTINGS = GatewaySettings(
    platform=Platform.EVERY_ORG,
    api_key="eo-key",
    api_url="https://partners.every.test/v0.2",
    checkout_url="https://www.every.test",
    return_url="https://pbd.test",
    currency="USD",
    max_retries=0,
)


def jg(*responses):
    session = FakeSession(*responses)
    return JustGivingClient(JG_SETTINGS, session=session), session


# ----------------------------
# Donation URL
# ----------------------------
def test_donation_url_carries_amount_reference_and_exit_url():
    client, _ = jg()
    url = client.build_donation_url("2050", Decimal("150"), "PD-JG-0123456789ABCDEF")

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
        "https://link.justgiving.test/v1/charity/donate/charityId/2050"
    )
    qs = parse_qs(parts.query)
    assert qs["donationValue"] == ["150"]
    assert qs["currency"] == ["GBP"]
    assert qs["reference"] == ["PD-JG-0123456789ABCDEF"]
    assert qs["skipGiftAid"] == ["true"]
    assert qs["exiturl"] == ["https://pbd.test/en/donation-success?jgDonationId=JUSTGIVING-DONATION-ID"]
    assert "donationValue=150" in url


@pytest.mark.parametrize(
    "locale,expected",
    [("en-GB", "en-GB"), ("fr", "fr"), ("../evil", "en"), ("en/x?y", "en"), ("", "en"), ("EN", "en")],
)
def test_exit_url_locale_falls_back_to_en(locale, expected):
    client, _ = jg()
    url = client.build_donation_url("2050", Decimal("5"), "PD-JG-0123456789ABCDEF", locale=locale)
    exit_url = parse_qs(urlsplit(url).query)["exiturl"][0]
    assert exit_url.startswith(f"https://pbd.test/{expected}/donation-success?")


def test_donation_url_is_deterministic():
    client, _ = jg()
    a = client.build_donation_url("2050", Decimal("12.5"), "PD-JG-AAAAAAAAAAAAAAAA")
    b = client.build_donation_url("2050", Decimal("12.50"), "PD-JG-AAAAAAAAAAAAAAAA")
    assert a == b
    assert "donationValue=12.50" in a


def test_format_amount():
    assert format_amount(Decimal("150")) == "150"
    assert format_amount(Decimal("150.00")) == "150"
    assert format_amount(Decimal("9.9")) == "9.90"


# ----------------------------
# Donation lookup
# ----------------------------
def test_donation_lookup_404_is_not_found():
    client, session = jg(FakeResponse(404, text="Not Found"))
    lookup = client.get_donation_by_reference("PD-JG-0000000000000001")
    assert lookup.found is False
    assert session.calls[0]["url"] == "https://api.justgiving.test/app123/v1/donation/ref/PD-JG-0000000000000001"
    assert session.calls[0]["timeout"] == 5.0


def test_donation_lookup_empty_envelope_is_not_found():
    client, _ = jg(FakeResponse(200, {"donations": [], "pagination": {"totalResults": 0}}))
    assert client.get_donation_by_reference("PD-JG-0000000000000001").found is False


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Accepted", DonationOutcome.ACCEPTED),
        ("Pending", DonationOutcome.PENDING),
        ("Rejected", DonationOutcome.REJECTED),
        ("Cancelled", DonationOutcome.UNKNOWN),
    ],
)
def test_donation_status_normalized(raw, expected):
    payload = {
        "donations": [
            {
                "id": 987654,
                "donationRef": "PD-JG-0000000000000001",
                "donorDisplayName": "A. Donor",
                "amount": "150.00",
                "currencyCode": "GBP",
                "donationDate": "2026-10-01T10:00:00",
                "charityId": 2050,
                "status": raw,
            }
        ]
    }
    client, _ = jg(FakeResponse(200, payload))
    lookup = client.get_donation_by_reference("PD-JG-0000000000000001")
    assert lookup.found is True
    record = lookup.donation
    assert record.status is expected
    assert record.donation_id == "987654"
    assert record.amount == Decimal("150.00")
    assert record.currency == "GBP"
    assert record.organization_id == "2050"


def test_server_error_raises_transport_error():
    client, _ = jg(FakeResponse(503, text="upstream down"))
    with pytest.raises(GatewayTransportError) as exc:
        client.get_donation_by_reference("PD-JG-0000000000000001")
    assert exc.value.http_status == 503
    assert exc.value.status_code == 502


def test_network_failure_raises_transport_error():
    client, _ = jg(requests.ConnectionError("connection refused"))
    with pytest.raises(GatewayTransportError):
        client.get_donation_by_reference("PD-JG-0000000000000001")


def test_undecodable_body_raises_response_error():
    client, _ = jg(FakeResponse(200, None, text="<html>oops</html>"))
    with pytest.raises(GatewayResponseError):
        client.get_donation_by_reference("PD-JG-0000000000000001")


def test_envelope_without_donations_list_is_a_response_error():
    client, _ = jg(FakeResponse(200, {"unexpected": True}))
    with pytest.raises(GatewayResponseError):
        client.get_donation_by_reference("PD-JG-0000000000000001")


# ----------------------------
# Charities & fundraisers
# ----------------------------
def test_charity_lookup_normalizes_payload():
    payload = {
        "charityId": 2050,
        "name": "Great Ormond Street Hospital Children's Charity",
        "description": "Helping children",
        "logoAbsoluteUrl": "https://images.test/gosh.png",
        "subCategory": "Health",
        "registeredCharityNumber": "1160024",
        "country": "United Kingdom",
    }
    client, session = jg(FakeResponse(200, payload))
    org = client.lookup_organization("2050")
    assert session.calls[0]["url"].endswith("/app123/v1/charity/2050")
    assert org.organization_id == "2050"
    assert org.name.startswith("Great Ormond")
    assert org.logo_url == "https://images.test/gosh.png"
    assert org.category == "Health"
    assert org.registration_number == "1160024"


def test_charity_lookup_404_returns_none():
    client, _ = jg(FakeResponse(404))
    assert client.lookup_organization("999999") is None


def test_charity_search():
    payload = {
        "charitySearchResults": [
            {"charityId": "183092", "name": "Cancer Research UK", "description": "Beat cancer sooner"},
            {"charityId": "2357", "name": "RSPCA"},
        ],
        "totalItemsCount": 2,
    }
    client, session = jg(FakeResponse(200, payload))
    results = client.search_organizations("cancer", 5)
    assert [r.organization_id for r in results] == ["183092", "2357"]
    assert session.calls[0]["params"] == {"q": "cancer", "pageSize": 5}


def test_fundraiser_search_normalizes_search_results():
    payload = {
        "SearchResults": [
            {
                "PageName": "Running for GOSH",
                "PageUrl": "https://www.justgiving.test/fundraising/run-for-gosh",
                "PageOwner": "Sam",
                "CharityId": 2050,
                "EventId": 77,
                "EventName": "London Marathon",
                "RaisedAmount": "1200.50",
                "TargetAmount": 2000,
            }
        ],
        "numberOfHits": 1,
    }
    client, session = jg(FakeResponse(200, payload))
    pages = client.search_fundraisers("gosh")
    assert session.calls[0]["url"].endswith("/app123/v1/fundraising/search")
    assert len(pages) == 1
    page = pages[0]
    assert page.short_name == "run-for-gosh"
    assert page.organization_id == "2050"
    assert page.raised_amount == Decimal("1200.50")
    assert page.summary == "London Marathon"


@pytest.mark.parametrize("value,ok", [("2050", True), ("0", False), ("abc", False), ("", False), ("-5", False)])
def test_charity_id_validation(value, ok):
    client, _ = jg()
    assert client.validate_organization_id(value) is ok


# ----------------------------
# Every.org & registry
# ----------------------------
def test_everyorg_cannot_reconcile():
    client = EveryOrgClient(EO_SETTINGS, session=FakeSession())
    assert client.supports_reconciliation is False
    with pytest.raises(PlatformNotSupportedError):
        client.get_donation_by_reference("PD-EO-0000000000000001")


def test_everyorg_donate_link_carries_partner_reference():
    client = EveryOrgClient(EO_SETTINGS, session=FakeSession())
    url = client.build_donation_url("lydia-home", Decimal("25"), "PD-EO-00000000000000AA")
    assert url.startswith("https://www.every.test/lydia-home#/donate?")
    qs = parse_qs(url.split("#/donate?", 1)[1])
    assert qs["amount"] == ["25"]
    assert qs["frequency"] == ["ONCE"]
    assert qs["partner_donation_id"] == ["PD-EO-00000000000000AA"]


def test_everyorg_has_no_fundraiser_search():
    client = EveryOrgClient(EO_SETTINGS, session=FakeSession())
    with pytest.raises(PlatformNotSupportedError):
        client.search_fundraisers("run")


def test_everyorg_lookup_reads_nonprofit_envelope():
    payload = {"data": {"nonprofit": {"primarySlug": "lydia-home", "name": "Lydia Home", "tags": ["kids"]}}}
    session = FakeSession(FakeResponse(200, payload))
    org = EveryOrgClient(EO_SETTINGS, session=session).lookup_organization("lydia-home")
    assert org.organization_id == "lydia-home"
    assert org.category == "kids"
    assert session.calls[0]["params"] == {"apiKey": "eo-key"}


def test_registry_gates_everyorg_behind_config():
    base = {"JUSTGIVING_API_KEY": "k", "JUSTGIVING_API_URL": "https://api.justgiving.test"}
    registry = build_registry(dict(base, EVERYORG_ENABLED=False))
    assert registry.platforms == [Platform.JUSTGIVING]
    with pytest.raises(PlatformNotSupportedError):
        registry.get(Platform.EVERY_ORG)

    registry = build_registry(dict(base, EVERYORG_ENABLED=True))
    assert registry.get(Platform.EVERY_ORG).platform == Platform.EVERY_ORG
    assert registry.reconciler_for(Platform.EVERY_ORG) is None
    assert registry.reconciler_for(Platform.JUSTGIVING) is not None
