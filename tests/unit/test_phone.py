import pytest
from orderflow.tools.phone import PhoneNormalizer

phones = PhoneNormalizer("54")

@pytest.mark.parametrize("raw", [
    "+54 9 11 3556-2673",
    "+5491135562673",
    "5491135562673",
    "541135562673",
    "+541135562673",
    "11 3556 2673",
    "91135562673",
])
def test_normalize_collapses_spellings(raw):
    phone = phones.normalize(raw)
    assert phone is not None
    assert phone.canonical == "+541135562673"
    assert phone.country_code == "54"
    assert phone.national_number == "1135562673"

@pytest.mark.parametrize("raw", ["+54 9 11 3556-2673", "1135562673", "+543415551234", "5493415551234"])
def test_normalize_is_idempotent(raw):
    once = phones.normalize(raw).canonical
    assert phones.normalize(once).canonical == once

@pytest.mark.parametrize("raw", ["", None, "abc", "12345", "+54 11 3556", "+1 202 555 0143 99 12"])
def test_normalize_rejects_malformed(raw):
    assert phones.normalize(raw) is None

def test_national_number_starting_with_country_code_is_kept():
    # 10 digits: nothing to strip even though it starts with 54
    assert phones.normalize("5412345678").canonical == "+545412345678"

def test_search_variants_cover_legacy_forms():
    variants = phones.search_variants("+54 9 11 3556-2673")
    assert len(variants) <= 8
    assert len(variants) == len(set(variants))
    for expected in ["+541135562673", "541135562673", "1135562673", "+5491135562673", "5491135562673"]:
        assert expected in variants

def test_search_variants_of_unparseable_input_keep_raw_forms():
    variants = phones.search_variants("12-34")
    assert variants[0] == "12-34"
    assert "1234" in variants

def test_equivalent():
    assert phones.equivalent("+54 9 11 3556-2673", "1135562673")
    assert not phones.equivalent("+541135562673", "+541135562674")

def test_to_readable():
    assert phones.to_readable("5491135562673") == "+54 11 3556-2673"
    assert phones.to_readable("+543415551234") == "+54 341 555-1234"
    assert phones.to_readable("n/a") == "n/a"

def test_other_country_code():
    mexico = PhoneNormalizer("52")
    assert mexico.normalize("+52 55 1234 5678").canonical == "+525512345678"
    assert mexico.normalize("+54 9 11 3556-2673") is None
