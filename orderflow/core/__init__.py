"""
Core module initialization.
Exports configuration, logging utilities and the checkout exceptions.
"""

from orderflow.core.config import get_settings, Settings, EnvironmentMode
from orderflow.core.exceptions import (
    CheckoutError,
    NoZoneForPostalCode,
    AmbiguousDeliveryZone,
    CheckoutLocked,
    SubmissionUnavailable,
    InvalidTransition,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "CheckoutError",
    "NoZoneForPostalCode",
    "AmbiguousDeliveryZone",
    "CheckoutLocked",
    "SubmissionUnavailable",
    "InvalidTransition",
]
