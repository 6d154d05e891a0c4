import datetime as dt
import math
from typing import Any, Optional

# ISO alpha-3 to alpha-2 for the countries the provider catalogs cover
ALPHA3_TO_ALPHA2 = {
    "USA": "US", "DEU": "DE", "GBR": "GB", "FRA": "FR", "JPN": "JP",
    "CHN": "CN", "IND": "IN", "BRA": "BR", "RUS": "RU", "AUS": "AU",
    "CAN": "CA", "ITA": "IT", "ESP": "ES", "MEX": "MX", "KOR": "KR",
    "TUR": "TR", "SAU": "SA", "ZAF": "ZA", "NGA": "NG", "EGY": "EG",
    "ARG": "AR", "POL": "PL", "NLD": "NL", "SWE": "SE", "CHE": "CH",
}
ALPHA2_TO_ALPHA3 = {v: k for k, v in ALPHA3_TO_ALPHA2.items()}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def iso_now() -> str:
    return utcnow().isoformat()


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def code_variants(code: str) -> set[str]:
    """Both ISO forms of a country code when the mapping is known."""
    c = normalize_code(code)
    variants = {c}
    if c in ALPHA3_TO_ALPHA2:
        variants.add(ALPHA3_TO_ALPHA2[c])
    if c in ALPHA2_TO_ALPHA3:
        variants.add(ALPHA2_TO_ALPHA3[c])
    return variants


def parse_numeric(value: Any) -> Optional[float]:
    """Parse ints, floats and comma-grouped strings; NaN/inf and junk become None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        try:
            f = float(value.replace(",", ""))
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    return None


def ordinal_suffix(num: int) -> str:
    j, k = num % 10, num % 100
    if j == 1 and k != 11:
        return "st"
    if j == 2 and k != 12:
        return "nd"
    if j == 3 and k != 13:
        return "rd"
    return "th"


def fmt_number(x: float) -> str:
    """Thousands-grouped formatting, keeping decimals only when present."""
    if float(x).is_integer():
        return f"{int(x):,}"
    return f"{x:,}"
