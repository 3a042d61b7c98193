import pytest

from voicedesk.contacts import (
    extract_phone_from_text,
    last_ten,
    normalize_phone,
    phone_search_forms,
    same_line,
)
from voicedesk.errors import InvalidContact


@pytest.mark.parametrize("raw", ["6194587071", "(619) 458-7071", "619.458.7071", "619 458 7071"])
def test_ten_digits_become_us_e164(raw):
    assert normalize_phone(raw) == "+16194587071"


def test_eleven_digits_with_leading_one():
    assert normalize_phone("1-619-458-7071") == "+16194587071"


def test_leading_plus_keeps_country_code():
    assert normalize_phone("+44 20 7946 0958") == "+442079460958"


def test_other_lengths_get_plus_prefix():
    assert normalize_phone("442079460958") == "+442079460958"


@pytest.mark.parametrize("raw", [None, "", "12345", "phone", "1234567890123456"])
def test_unusable_numbers_raise(raw):
    with pytest.raises(InvalidContact):
        normalize_phone(raw)


def test_same_line_compares_last_ten():
    assert same_line("+1 (619) 458-7071", "6194587071")
    assert not same_line("6194587071", "6194587072")
    assert last_ten("+16194587071") == "6194587071"


def test_phone_search_forms():
    assert phone_search_forms("619-458-7071") == ["+16194587071", "6194587071", "16194587071"]


def test_extract_digit_run():
    assert extract_phone_from_text("sure, call me at 619-458-7071 tomorrow") == "6194587071"


def test_extract_spoken_digits():
    text = "my number is six one nine, four five eight, seven oh seven one thanks"
    assert extract_phone_from_text(text) == "6194587071"


def test_extract_hyphenated_words():
    assert extract_phone_from_text("it's six-one-nine four-five-eight seven-zero-seven-one") == "6194587071"


def test_extract_returns_none_without_enough_digits():
    assert extract_phone_from_text("call me on one two three") is None
    assert extract_phone_from_text("") is None
