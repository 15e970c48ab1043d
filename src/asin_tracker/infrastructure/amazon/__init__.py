"""Amazon Selling Partner API adapters."""

from asin_tracker.infrastructure.amazon.eligibility_client import (
    SellingPartnerEligibilityClient,
    UnconfiguredEligibilityClient,
    map_eligibility_payload,
)
from asin_tracker.infrastructure.amazon.lwa_token_provider import LwaTokenProvider
from asin_tracker.infrastructure.amazon.request_signer import SigV4RequestSigner

__all__ = [
    "LwaTokenProvider",
    "SellingPartnerEligibilityClient",
    "SigV4RequestSigner",
    "UnconfiguredEligibilityClient",
    "map_eligibility_payload",
]
