"""
Delivery Zone Resolution

Maps a postal code (+ optional city) to the restaurant's delivery zone.

Rules:
    1. Candidates are zones listing the postal code (trimmed,
       case-insensitive exact match).
    2. No candidate        -> NO_ZONE, the postal code is not served.
    3. One candidate       -> RESOLVED.
    4. Several candidates  -> the city text must be contained in exactly one
       candidate's name (or match text); otherwise AMBIGUOUS and the
       customer has to pick the zone explicitly.

The resolver never guesses between equally plausible zones: a wrong zone
silently charges the wrong delivery fee and minimum order.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from orderflow.core.exceptions import AmbiguousDeliveryZone, NoZoneForPostalCode
from orderflow.core.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryZone:
    """
    Delivery catchment area as seen by the checkout engine (read-only).

    Attributes:
        id: Zone identifier
        name: Display name, also matched against the city
        postal_codes: Postal codes served, in configured order
        price: Delivery fee
        minimum_order_value: Minimum subtotal for delivery into this zone
        match_text: Extra free text matched against the city
    """
    id: int
    name: str
    postal_codes: tuple[str, ...] = ()
    price: Decimal = ZERO
    minimum_order_value: Decimal = ZERO
    match_text: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "DeliveryZone":
        """Build from a mapping or an ORM row."""
        get = record.get if isinstance(record, dict) else lambda key, default=None: getattr(record, key, default)
        return cls(
            id=int(get("id")),
            name=get("name") or "",
            postal_codes=tuple(str(code) for code in (get("postal_codes") or ())),
            price=to_decimal(get("price")),
            minimum_order_value=to_decimal(get("minimum_order_value")),
            match_text=get("match_text"),
        )

    def serves(self, postal_code: str) -> bool:
        wanted = normalize_postal_code(postal_code)
        return any(normalize_postal_code(code) == wanted for code in self.postal_codes)

    def matches_city(self, city: str) -> bool:
        needle = city.strip().lower()
        if not needle:
            return False
        haystacks = [self.name, self.match_text or ""]
        return any(needle in text.lower() for text in haystacks)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "postal_codes": list(self.postal_codes),
            "price": str(self.price),
            "minimum_order_value": str(self.minimum_order_value),
            "match_text": self.match_text,
        }


def normalize_postal_code(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class ZoneResolutionStatus(str, Enum):
    PENDING = "pending"        # no postal code entered yet
    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"    # manual selection required
    NO_ZONE = "no_zone"


@dataclass(frozen=True)
class ZoneResolution:
    """
    Outcome of resolving a postal code.

    ``zone`` is set only when ``status`` is RESOLVED. ``candidates`` holds
    the zones the customer may choose from when the status is AMBIGUOUS.
    """
    status: ZoneResolutionStatus
    postal_code: str = ""
    city: str = ""
    zone: Optional[DeliveryZone] = None
    candidates: tuple[DeliveryZone, ...] = field(default_factory=tuple)
    manually_selected: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == ZoneResolutionStatus.RESOLVED and self.zone is not None

    @property
    def requires_selection(self) -> bool:
        return self.status == ZoneResolutionStatus.AMBIGUOUS

    def select(self, zone_id: int) -> "ZoneResolution":
        """
        Resolve an ambiguous result by explicit customer choice.

        Raises:
            ValueError: If ``zone_id`` is not one of the candidates
        """
        for candidate in self.candidates:
            if candidate.id == zone_id:
                return replace(
                    self,
                    status=ZoneResolutionStatus.RESOLVED,
                    zone=candidate,
                    manually_selected=True,
                    error_message=None,
                    error_code=None,
                )
        raise ValueError(f"Zone {zone_id} does not serve postal code {self.postal_code}")

    def raise_for_status(self) -> DeliveryZone:
        """
        Return the resolved zone or raise the matching checkout error.

        Raises:
            NoZoneForPostalCode: Postal code missing or not served
            AmbiguousDeliveryZone: Several zones remain plausible
        """
        if self.is_resolved:
            return self.zone
        if self.status == ZoneResolutionStatus.AMBIGUOUS:
            raise AmbiguousDeliveryZone(self.postal_code, [z.name for z in self.candidates])
        raise NoZoneForPostalCode(self.postal_code)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "postal_code": self.postal_code,
            "zone": self.zone.to_dict() if self.zone else None,
            "candidates": [zone.to_dict() for zone in self.candidates],
            "manually_selected": self.manually_selected,
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


class ZoneResolver:
    """
    Resolves postal codes against one restaurant's delivery zones.

    Stateless apart from the zone list; call ``resolve`` again on every
    postal code or city edit.
    """

    def __init__(self, zones: Iterable[DeliveryZone]):
        self.zones: Sequence[DeliveryZone] = tuple(zones)

    def candidates_for(self, postal_code: str) -> tuple[DeliveryZone, ...]:
        return tuple(zone for zone in self.zones if zone.serves(postal_code))

    def resolve(self, postal_code: Optional[str], city: Optional[str] = None) -> ZoneResolution:
        postal_code = (postal_code or "").strip()
        city = (city or "").strip()

        if not postal_code:
            return ZoneResolution(status=ZoneResolutionStatus.PENDING, city=city)

        candidates = self.candidates_for(postal_code)

        if not candidates:
            error = NoZoneForPostalCode(postal_code)
            logger.info(f"No delivery zone for postal code {postal_code}")
            return ZoneResolution(
                status=ZoneResolutionStatus.NO_ZONE,
                postal_code=postal_code,
                city=city,
                error_message=error.message,
                error_code=error.code,
            )

        if len(candidates) == 1:
            return ZoneResolution(
                status=ZoneResolutionStatus.RESOLVED,
                postal_code=postal_code,
                city=city,
                zone=candidates[0],
                candidates=candidates,
            )

        by_city = [zone for zone in candidates if zone.matches_city(city)]
        if len(by_city) == 1:
            return ZoneResolution(
                status=ZoneResolutionStatus.RESOLVED,
                postal_code=postal_code,
                city=city,
                zone=by_city[0],
                candidates=candidates,
            )

        error = AmbiguousDeliveryZone(postal_code, [zone.name for zone in candidates])
        logger.info(
            f"Postal code {postal_code} matches {len(candidates)} zones, "
            f"city {city!r} matches {len(by_city)}; manual selection required"
        )
        return ZoneResolution(
            status=ZoneResolutionStatus.AMBIGUOUS,
            postal_code=postal_code,
            city=city,
            candidates=candidates,
            error_message=error.message,
            error_code=error.code,
        )


def resolve_zone(
    zones: Iterable[DeliveryZone],
    postal_code: Optional[str],
    city: Optional[str] = None,
) -> ZoneResolution:
    """Shortcut for ``ZoneResolver(zones).resolve(postal_code, city)``."""
    return ZoneResolver(zones).resolve(postal_code, city)
