"""
Checkout exception hierarchy.

Service calls report expected failures through result objects; these
exceptions cover zone resolution (``raise_for_status``) and misuse of the
checkout state machine.
"""

from typing import Optional, Sequence


class CheckoutError(Exception):
    """Base class for all checkout errors. ``message`` is user-facing."""

    code = "checkout_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NoZoneForPostalCode(CheckoutError):
    code = "no_zone_for_postal_code"

    def __init__(self, postal_code: str):
        super().__init__(f"Sorry, we do not deliver to postal code {postal_code}.")
        self.postal_code = postal_code


class AmbiguousDeliveryZone(CheckoutError):
    code = "ambiguous_zone"

    def __init__(self, postal_code: str, candidate_names: Sequence[str]):
        super().__init__(
            f"Postal code {postal_code} is served by several delivery zones "
            f"({', '.join(candidate_names)}). Please select your delivery zone."
        )
        self.postal_code = postal_code
        self.candidate_names = list(candidate_names)


class CheckoutLocked(CheckoutError):
    code = "checkout_locked"

    def __init__(self):
        super().__init__("Your order is being submitted. Please wait.")


class SubmissionUnavailable(CheckoutError):
    code = "submission_unavailable"


class InvalidTransition(CheckoutError):
    code = "invalid_transition"
