from .base import (
    DonationLookup,
    DonationOutcome,
    DonationRecord,
    FundraiserPage,
    GatewayClient,
    GatewaySettings,
    OrganizationDetails,
    format_amount,
    normalize_locale,
)
from .everyorg import EveryOrgClient
from .justgiving import JustGivingClient
from .registry import GatewayRegistry, build_registry, gateways, init_gateways

__all__ = [
    "DonationLookup",
    "DonationOutcome",
    "DonationRecord",
    "EveryOrgClient",
    "FundraiserPage",
    "GatewayClient",
    "GatewayRegistry",
    "GatewaySettings",
    "JustGivingClient",
    "OrganizationDetails",
    "build_registry",
    "format_amount",
    "gateways",
    "init_gateways",
    "normalize_locale",
]
