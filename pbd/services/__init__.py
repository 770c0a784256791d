from .charities import CharityCache, PopulateSummary, generate_slug
from .confirmation import ConfirmationResult, confirm_donation
from .donation_requests import CreatedDonationRequest, DonationRequestCreator, DonationRequestInput, parse_amount
from .reconciliation import PollSummary, ReconciliationPoller
from .references import ReferenceGenerator
from .store import DonationRequestStore

__all__ = [
    "CharityCache",
    "ConfirmationResult",
    "CreatedDonationRequest",
    "DonationRequestCreator",
    "DonationRequestInput",
    "DonationRequestStore",
    "PollSummary",
    "PopulateSummary",
    "ReconciliationPoller",
    "ReferenceGenerator",
    "confirm_donation",
    "generate_slug",
    "parse_amount",
]
