"""
Contact Prefill Cache

Remembers the last contact and address a customer used at a terminal,
keyed by restaurant id, so the next checkout can start pre-filled.

This is a convenience cache only: the values are never trusted by the
server and a broken file simply means no prefill.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from filelock import FileLock, Timeout

from orderflow.core.config import get_settings

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("name", "phone", "email")
ADDRESS_FIELDS = ("street", "house_number", "postal_code", "city")


class ContactPrefillCache:
    """
    JSON file of ``{restaurant_id: {"contact": {...}, "address": {...}}}``
    guarded by a file lock.

    Example:
        >>> cache = ContactPrefillCache(Path("data/checkout_prefill.json"))
        >>> cache.save(1, {"name": "Anna", "phone": "030 123"}, {"postal_code": "10999"})
        >>> cache.load(1)["contact"]["name"]
        'Anna'
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, lock_timeout: Optional[float] = None):
        settings = get_settings()
        self.path = Path(path) if path is not None else settings.prefill_path
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.excel_lock_timeout
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable prefill cache {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, restaurant_id: int) -> Optional[dict[str, dict[str, str]]]:
        """Last saved values for a restaurant, or None."""
        if not self.path.exists():
            return None
        try:
            with FileLock(str(self._lock_path), timeout=self.lock_timeout):
                entry = self._read_all().get(str(restaurant_id))
        except Timeout:
            logger.warning(f"Prefill cache lock timeout ({self.lock_timeout}s), skipping prefill")
            return None

        if not isinstance(entry, dict):
            return None
        return {
            "contact": _pick(entry.get("contact"), CONTACT_FIELDS),
            "address": _pick(entry.get("address"), ADDRESS_FIELDS),
        }

    def save(
        self,
        restaurant_id: int,
        contact: dict[str, Any],
        address: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Store the values used for a successful order."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with FileLock(str(self._lock_path), timeout=self.lock_timeout):
                data = self._read_all()
                previous = data.get(str(restaurant_id)) or {}
                data[str(restaurant_id)] = {
                    "contact": _pick(contact, CONTACT_FIELDS),
                    # Pickup orders keep the last delivery address
                    "address": _pick(address, ADDRESS_FIELDS) if address else previous.get("address", {}),
                }
                self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except Timeout:
            logger.warning(f"Prefill cache lock timeout ({self.lock_timeout}s), not saved")
            return False

        logger.debug(f"Prefill saved for restaurant #{restaurant_id}")
        return True

    def clear(self, restaurant_id: Optional[int] = None) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self._lock_path), timeout=self.lock_timeout):
            if restaurant_id is None:
                if self.path.exists():
                    self.path.unlink()
                return
            data = self._read_all()
            data.pop(str(restaurant_id), None)
            self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _pick(values: Optional[dict[str, Any]], fields: tuple[str, ...]) -> dict[str, str]:
    values = values or {}
    return {key: str(values.get(key) or "") for key in fields}
