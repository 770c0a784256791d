from decimal import Decimal

from pbd.errors import GatewayTransportError
from pbd.gateways import FundraiserPage, OrganizationDetails
from pbd.models import DonationStatus

PAYLOAD = {
    "serviceId": "svc-1",
    "donorId": "donor-1",
    "fundraiserId": "fr-1",
    "donationAmount": 150,
    "organizationId": "2050",
}


# ----------------------------
# Donation requests
# ----------------------------
def test_create_returns_201_with_redirect(client):
    resp = client.post("/api/donation-requests", json=PAYLOAD)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    assert body["status"] == DonationStatus.PENDING
    assert body["referenceId"].startswith("PD-JG-")
    assert "donationValue=150" in body["donationUrl"]
    assert body["organizationName"] == "Great Ormond Street Hospital Charity"
    assert resp.headers["X-Request-ID"]


def test_justgiving_alias_takes_org_from_path(client):
    payload = {k: v for k, v in PAYLOAD.items() if k != "organizationId"}
    resp = client.post("/api/just-giving/charity/183092", json=payload)
    assert resp.status_code == 201
    assert resp.get_json()["organizationId"] == "183092"


def test_everyorg_alias_is_not_implemented_when_disabled(client):
    resp = client.post("/api/every-org/non-profit/lydia-home", json=PAYLOAD)
    assert resp.status_code == 501
    body = resp.get_json()
    assert body["ok"] is False
    assert "not supported" in body["error"]


def test_validation_error_shape(client):
    resp = client.post("/api/donation-requests", json={"donationAmount": -1})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"]
    assert set(body["details"]["fields"]) >= {"serviceId", "donorId", "fundraiserId", "donationAmount"}


def test_amount_rounding_to_zero_is_a_validation_error(client):
    resp = client.post("/api/donation-requests", json=dict(PAYLOAD, donationAmount=0.001))
    assert resp.status_code == 400
    assert resp.get_json()["details"]["fields"] == ["donationAmount"]


def test_unknown_charity_is_404(client):
    resp = client.post("/api/donation-requests", json=dict(PAYLOAD, organizationId="9999"))
    assert resp.status_code == 404


def test_gateway_outage_is_502(client, fake_gateway):
    fake_gateway.organizations["2050"] = GatewayTransportError("down")
    resp = client.post("/api/donation-requests", json=PAYLOAD)
    assert resp.status_code == 502
    assert resp.get_json()["ok"] is False


def test_get_and_list_requests(client):
    created = client.post("/api/donation-requests", json=PAYLOAD).get_json()

    resp = client.get(f"/api/donation-requests/{created['requestId']}")
    assert resp.status_code == 200
    assert resp.get_json()["request"]["referenceId"] == created["referenceId"]

    listed = client.get("/api/donation-requests?donorId=donor-1&status=pending").get_json()
    assert listed["count"] == 1

    assert client.get("/api/donation-requests/nope").status_code == 404
    assert client.get("/api/donation-requests").status_code == 400
    assert client.get("/api/donation-requests?donorId=donor-1&status=bogus").status_code == 400


# ----------------------------
# Confirmation & polling
# ----------------------------
def test_confirm_then_confirm_again(client):
    created = client.post("/api/donation-requests", json=PAYLOAD).get_json()

    first = client.post("/api/donations/confirm", json={"jgDonationId": "JG-1"})
    assert first.status_code == 200
    assert first.get_json()["referenceId"] == created["referenceId"]
    assert first.get_json()["alreadyConfirmed"] is False

    second = client.post("/api/donations/confirm", json={"externalDonationId": "JG-1"}).get_json()
    assert second["alreadyConfirmed"] is True
    assert second["status"] == DonationStatus.SUCCESS


def test_confirm_without_candidates_is_404(client):
    resp = client.post("/api/donations/confirm", json={"externalDonationId": "JG-X"})
    assert resp.status_code == 404


def test_confirm_requires_id(client):
    assert client.post("/api/donations/confirm", json={}).status_code == 400


def test_check_runs_a_poll(client, fake_gateway):
    created = client.post("/api/donation-requests", json=PAYLOAD).get_json()
    fake_gateway.accept(created["referenceId"], "X")

    body = client.post("/api/donations/check").get_json()

    assert body["checked"] == 1
    assert body["succeeded"] == 1
    assert body["trigger"] == "api"


def test_check_honours_cron_secret(app, client):
    app.config["CRON_SECRET"] = "s3cret"
    assert client.post("/api/donations/check").status_code == 401
    assert client.post("/api/donations/check", headers={"Authorization": "Bearer nope"}).status_code == 401
    ok = client.post("/api/donations/check", headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200


def test_manual_sync(client, fake_gateway):
    created = client.post("/api/donation-requests", json=PAYLOAD).get_json()

    fake_gateway.donations[created["referenceId"]] = GatewayTransportError("down")
    assert client.post(f"/api/donation-requests/{created['requestId']}/sync").status_code == 502

    fake_gateway.accept(created["referenceId"], "X-SYNC")
    body = client.post(f"/api/donation-requests/{created['requestId']}/sync").get_json()
    assert body["outcome"] == "succeeded"
    assert body["request"]["externalDonationId"] == "X-SYNC"


# ----------------------------
# Charities
# ----------------------------
def test_charity_lookup_and_cached_search(client):
    resp = client.get("/api/charities/2050")
    assert resp.status_code == 200
    assert resp.get_json()["charity"]["name"] == "Great Ormond Street Hospital Charity"

    found = client.get("/api/charities/cached?q=ormond").get_json()
    assert found["total"] == 1
    assert client.get("/api/charities/cached?q=o").status_code == 400

    assert client.get("/api/charities/abc").status_code == 400
    assert client.get("/api/charities/9999").status_code == 404


def test_live_search(client, fake_gateway):
    fake_gateway.search_results = [OrganizationDetails(organization_id="1", name="Lifeline")]
    body = client.get("/api/charities/search?q=life").get_json()
    assert body["charities"][0]["name"] == "Lifeline"
    assert client.get("/api/charities/search").status_code == 400


def test_charity_actions(client):
    assert client.post("/api/charities/2050", json={"action": "validate"}).get_json()["valid"] is True
    assert client.post("/api/charities/2050", json={"action": "sync"}).get_json()["synced"] is True

    url = client.post(
        "/api/charities/2050",
        json={"action": "donation-url", "amount": "25", "reference": "PD-JG-00000000000000AB"},
    ).get_json()["donationUrl"]
    assert "donationValue=25" in url

    assert client.post("/api/charities/2050", json={"action": "donation-url"}).status_code == 400
    for bad in ("NaN", "Infinity", "-Infinity", "0.001"):
        resp = client.post(
            "/api/charities/2050",
            json={"action": "donation-url", "amount": bad, "reference": "PD-JG-00000000000000AB"},
        )
        assert resp.status_code == 400, bad
        assert resp.get_json()["details"]["fields"] == ["amount"]
    assert client.post("/api/charities/2050", json={"action": "explode"}).status_code == 400


def test_fundraiser_search(client, fake_gateway):
    fake_gateway.fundraiser_results = [
        FundraiserPage(
            title="Running for GOSH",
            short_name="run-for-gosh",
            url="https://www.justgiving.test/fundraising/run-for-gosh",
            owner="Sam",
            organization_id="2050",
            raised_amount=Decimal("1200.50"),
        )
    ]
    body = client.get("/api/charities/fundraisers?q=gosh").get_json()
    assert body["total"] == 1
    assert body["fundraisers"][0]["shortName"] == "run-for-gosh"
    assert body["fundraisers"][0]["raisedAmount"] == 1200.5
    assert client.get("/api/charities/fundraisers").status_code == 400


def test_populate_endpoint(client):
    body = client.post("/api/charities/populate", json={"mode": "essential"}).get_json()
    assert body["mode"] == "essential"
    assert body["priorityResults"] == 2
    assert client.post("/api/charities/populate", json={"mode": "bogus"}).status_code == 400


# ----------------------------
# Health
# ----------------------------
def test_health_endpoints(client):
    assert client.get("/live").get_json()["status"] == "ok"
    assert client.get("/healthz").status_code == 200
    ready = client.get("/ready")
    assert ready.status_code == 200
    parts = ready.get_json()["parts"]
    assert parts["database"]["ok"] is True
    assert "justgiving" in parts["gateways"]["platforms"]


def test_unknown_api_route_is_json(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["ok"] is False
