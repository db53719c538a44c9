"""Tests for address, phone, website and slug normalisation."""

from __future__ import annotations

import hashlib

from storedirectory.ingestion.normalize import (
    build_address,
    hash_address,
    normalize_address,
    normalize_city_name,
    normalize_phone,
    normalize_website,
    slugify,
    store_slug,
)

# =========================================================================
# normalize_address
# =========================================================================


class TestNormalizeAddress:
    """Tests for the address canonicalisation rules."""

    def test_street_suffix(self):
        assert normalize_address("123 Main Street") == "123 main st"

    def test_avenue_and_boulevard(self):
        assert normalize_address("9 Ocean Avenue") == "9 ocean av"
        assert normalize_address("9 Sunset Blvd.") == "9 sunset bl"

    def test_directionals(self):
        assert normalize_address("100 North Broadway") == "100 n broadway"
        assert normalize_address("100 Northeast 2nd Ave") == "100 ne 2nd av"

    def test_strips_punctuation_and_case(self):
        assert normalize_address("12-B Elm Rd., San Diego, CA") == "12 b elm rd san diego ca"

    def test_removes_unit_designators(self):
        assert normalize_address("123 Main St Suite 200") == "123 main st"
        assert normalize_address("123 Main St, Ste. 4") == "123 main st"
        assert normalize_address("123 Main St Apt 7B") == "123 main st"

    def test_does_not_strip_words_starting_with_designators(self):
        assert normalize_address("12 Stewart Ave") == "12 stewart av"
        assert normalize_address("7 United Way") == "7 united wy"

    def test_transliterates_accents(self):
        assert normalize_address("1 Calle Peñasco") == "1 calle penasco"

    def test_collapses_whitespace(self):
        assert normalize_address("  5   Oak    Lane  ") == "5 oak ln"

    def test_empty(self):
        assert normalize_address("") == ""
        assert normalize_address(None) == ""


# =========================================================================
# hash_address
# =========================================================================


class TestHashAddress:
    """Tests for the dedup key."""

    def test_deterministic(self):
        assert hash_address("123 Main St") == hash_address("123 Main St")

    def test_suffix_spelling_does_not_matter(self):
        assert hash_address("123 Main St") == hash_address("123 main street")

    def test_known_digest_is_stable(self):
        # must never change between releases
        expected = hashlib.sha256(b"123 main st").hexdigest()[:16]
        assert hash_address("123 MAIN STREET") == expected

    def test_length_and_alphabet(self):
        key = hash_address("500 Broadway")
        assert len(key) == 16
        assert all(c in "0123456789abcdef" for c in key)

    def test_different_addresses_differ(self):
        assert hash_address("123 Main St") != hash_address("125 Main St")

    def test_unusable_input_has_no_key(self):
        assert hash_address(None) is None
        assert hash_address("") is None
        assert hash_address("   ") is None
        assert hash_address("!!! ...") is None


# =========================================================================
# Phone / website
# =========================================================================


class TestNormalizePhone:
    def test_digits_only(self):
        assert normalize_phone("(858) 555-1234") == "8585551234"

    def test_keeps_country_code(self):
        assert normalize_phone("+1 858-555-1234") == "18585551234"

    def test_too_short(self):
        assert normalize_phone("555-1234") is None

    def test_empty(self):
        assert normalize_phone(None) is None
        assert normalize_phone("") is None


class TestNormalizeWebsite:
    def test_adds_scheme(self):
        assert normalize_website("example.com") == "https://example.com"

    def test_keeps_existing_scheme(self):
        assert normalize_website("http://example.com") == "http://example.com"

    def test_google_redirect_dropped(self):
        assert normalize_website("/url?q=https://example.com") is None

    def test_blank(self):
        assert normalize_website("  ") is None
        assert normalize_website(None) is None


# =========================================================================
# Slugs, city keys, addresses
# =========================================================================


class TestSlugs:
    def test_slugify(self):
        assert slugify("Café Appliances & More!") == "cafe-appliances-more"

    def test_slugify_max_length_trims_trailing_hyphen(self):
        assert slugify("abc def", max_length=4) == "abc"

    def test_store_slug(self):
        assert store_slug("Appliance Outlet", "San Diego") == "appliance-outlet-san-diego"

    def test_store_slug_capped(self):
        assert len(store_slug("x" * 150, "San Diego")) == 100


class TestCityAndAddressHelpers:
    def test_city_key_ignores_case_and_spacing(self):
        assert normalize_city_name("  San   Diego ") == normalize_city_name("san diego")

    def test_build_address(self):
        assert build_address("123 Main St", "San Diego", "California") == (
            "123 Main St, San Diego, California"
        )

    def test_build_address_skips_blank_parts(self):
        assert build_address("123 Main St", "", "California") == "123 Main St, California"

    def test_build_address_requires_street(self):
        assert build_address(None, "San Diego", "California") is None
        assert build_address("  ", "San Diego", "California") is None
