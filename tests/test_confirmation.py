from datetime import timedelta

import pytest

from pbd.errors import NotFoundError, ValidationError
from pbd.extensions import db
from pbd.models import DonationRequest, DonationStatus, Resolution
from pbd.services import DonationRequestStore, confirm_donation


def _get(req_id):
    db.session.expire_all()
    return db.session.get(DonationRequest, req_id)


def test_confirms_most_recent_unmatched_pending(make_request, clock):
    older = make_request(now=clock.now - timedelta(minutes=5))
    newest = make_request(now=clock.now)

    result = confirm_donation("JG-123")

    assert result.success is True
    assert result.already_confirmed is False
    assert result.reference_id == newest.reference_id
    row = _get(newest.id)
    assert row.status == DonationStatus.SUCCESS
    assert row.external_donation_id == "JG-123"
    assert row.resolution == Resolution.CONFIRMED_ON_RETURN
    assert _get(older.id).status == DonationStatus.PENDING


def test_id_held_by_rejected_request_is_not_reported_as_success(make_request):
    rejected = make_request(status=DonationStatus.FUNDRAISER_REVIEW, external_donation_id="R1")
    pending = make_request()

    result = confirm_donation("R1")

    assert result.success is False
    assert result.already_confirmed is True
    assert result.status == DonationStatus.FUNDRAISER_REVIEW
    assert result.reference_id == rejected.reference_id
    assert _get(pending.id).status == DonationStatus.PENDING


def test_second_call_is_idempotent(make_request):
    req = make_request()
    other = make_request()

    first = confirm_donation("JG-555")
    second = confirm_donation("JG-555")

    assert first.already_confirmed is False
    assert second.already_confirmed is True
    assert second.reference_id == first.reference_id
    confirmed = [r for r in (_get(req.id), _get(other.id)) if r.status == DonationStatus.SUCCESS]
    assert len(confirmed) == 1


def test_rows_with_an_external_id_are_not_candidates(make_request):
    make_request(external_donation_id="OTHER")
    with pytest.raises(NotFoundError):
        confirm_donation("JG-1")


def test_no_pending_requests_is_not_found(app):
    with pytest.raises(NotFoundError):
        confirm_donation("JG-404")


def test_blank_id_is_rejected(app):
    with pytest.raises(ValidationError):
        confirm_donation("  ")


class RacingStore(DonationRequestStore):
    """Lets another worker win the first candidate before our update lands."""

    def __init__(self):
        self.raced = False

    def mark_success(self, request_id, external_donation_id, **kwargs):
        if not self.raced:
            self.raced = True
            super().mark_success(request_id, "SOMEONE-ELSE")
        return super().mark_success(request_id, external_donation_id, **kwargs)


def test_lost_race_moves_to_next_candidate(make_request, clock):
    older = make_request(now=clock.now - timedelta(minutes=1))
    newest = make_request(now=clock.now)

    result = confirm_donation("JG-RACE", store=RacingStore())

    assert result.reference_id == older.reference_id
    assert _get(newest.id).external_donation_id == "SOMEONE-ELSE"
    assert _get(older.id).external_donation_id == "JG-RACE"


def test_attempts_are_bounded(make_request, clock):
    for i in range(3):
        make_request(now=clock.now + timedelta(seconds=i))

    class AlwaysLoses(DonationRequestStore):
        def mark_success(self, request_id, external_donation_id, **kwargs):
            return False

    with pytest.raises(NotFoundError):
        confirm_donation("JG-LOSER", store=AlwaysLoses(), max_attempts=2)
