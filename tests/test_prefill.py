"""Tests for the contact prefill cache."""

from orderflow.services.prefill import ContactPrefillCache

CONTACT = {"name": "Anna Schmidt", "phone": "030 1234567", "email": ""}
ADDRESS = {"street": "Bergmannstr.", "house_number": "5", "postal_code": "10961", "city": "Berlin"}


class TestContactPrefillCache:

    def test_missing_file(self, tmp_path):
        assert ContactPrefillCache(tmp_path / "prefill.json").load(1) is None

    def test_save_and_load(self, tmp_path):
        cache = ContactPrefillCache(tmp_path / "prefill.json", lock_timeout=1)
        assert cache.save(1, CONTACT, ADDRESS)
        assert cache.load(1) == {"contact": CONTACT, "address": ADDRESS}
        assert cache.load(2) is None

    def test_pickup_keeps_previous_address(self, tmp_path):
        cache = ContactPrefillCache(tmp_path / "prefill.json", lock_timeout=1)
        cache.save(1, CONTACT, ADDRESS)
        cache.save(1, dict(CONTACT, name="Ben"))
        saved = cache.load(1)
        assert saved["contact"]["name"] == "Ben"
        assert saved["address"] == ADDRESS

    def test_unknown_fields_are_dropped(self, tmp_path):
        cache = ContactPrefillCache(tmp_path / "prefill.json", lock_timeout=1)
        cache.save(1, dict(CONTACT, card_number="4242"))
        assert "card_number" not in cache.load(1)["contact"]

    def test_unreadable_file_means_no_prefill(self, tmp_path):
        path = tmp_path / "prefill.json"
        path.write_text("{not json", encoding="utf-8")
        assert ContactPrefillCache(path, lock_timeout=1).load(1) is None

    def test_clear(self, tmp_path):
        cache = ContactPrefillCache(tmp_path / "prefill.json", lock_timeout=1)
        cache.save(1, CONTACT)
        cache.save(2, CONTACT)
        cache.clear(1)
        assert cache.load(1) is None
        assert cache.load(2) is not None
        cache.clear()
        assert cache.load(2) is None
