from worldstats.utils import code_variants, fmt_number, normalize_code, ordinal_suffix, parse_numeric


def test_normalize_code():
    assert normalize_code(" us ") == "US"
    assert normalize_code("") == ""


def test_code_variants_cover_both_forms():
    assert code_variants("usa") == {"USA", "US"}
    assert code_variants("DE") == {"DE", "DEU"}
    assert code_variants("XX") == {"XX"}


def test_parse_numeric():
    assert parse_numeric("1,234.5") == 1234.5
    assert parse_numeric(7) == 7.0
    assert parse_numeric(float("nan")) is None
    assert parse_numeric("n/a") is None
    assert parse_numeric(True) is None
    assert parse_numeric(None) is None


def test_ordinal_suffix():
    assert [ordinal_suffix(n) for n in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101, 111)] == [
        "st", "nd", "rd", "th", "th", "th", "th", "st", "nd", "st", "th",
    ]


def test_fmt_number_groups_thousands():
    assert fmt_number(76399) == "76,399"
    assert fmt_number(76399.0) == "76,399"
    assert fmt_number(1234.5) == "1,234.5"
