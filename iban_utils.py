# iban_utils.py
import re
from types import MappingProxyType

# Country code -> expected total IBAN length (SWIFT IBAN registry).
# Update this table when the registry adds or changes a country.
IBAN_LENGTHS = MappingProxyType({
    "AD": 24, "AE": 23, "AL": 28, "AT": 20, "AZ": 28,
    "BA": 20, "BE": 16, "BG": 22, "BH": 22, "BI": 27,
    "BR": 29, "BY": 28, "CH": 21, "CR": 22, "CY": 28,
    "CZ": 24, "DE": 22, "DJ": 27, "DK": 18, "DO": 28,
    "EE": 20, "EG": 29, "ES": 24, "FI": 18, "FK": 18,
    "FO": 18, "FR": 27, "GB": 22, "GE": 22, "GI": 23,
    "GL": 18, "GR": 27, "GT": 28, "HN": 28, "HR": 21,
    "HU": 28, "IE": 22, "IL": 23, "IQ": 23, "IS": 26,
    "IT": 27, "JO": 30, "KW": 30, "KZ": 20, "LB": 28,
    "LC": 32, "LI": 21, "LT": 20, "LU": 20, "LV": 21,
    "LY": 25, "MC": 27, "MD": 24, "ME": 22, "MK": 19,
    "MN": 20, "MR": 27, "MT": 31, "MU": 30, "NI": 28,
    "NL": 18, "NO": 15, "OM": 23, "PK": 24, "PL": 28,
    "PS": 29, "PT": 25, "QA": 29, "RO": 24, "RS": 22,
    "RU": 33, "SA": 24, "SC": 31, "SD": 18, "SE": 24,
    "SI": 19, "SK": 24, "SM": 27, "SO": 23, "ST": 25,
    "SV": 28, "TL": 23, "TN": 24, "TR": 26, "UA": 29,
    "VA": 22, "VG": 24, "XK": 20, "YE": 30,
})

# Country code, two check digits, BBAN. Shape only; length comes from IBAN_LENGTHS.
_IBAN_SHAPE = re.compile(r"[A-Z]{2}[0-9]{2}[A-Z0-9]+")

_GROUP_SIZE = 4


def normalize_iban(iban: str) -> str:
    """Remove spaces and make upper-case."""
    return re.sub(r"\s+", "", iban).upper()


def iban_mod97(numeric_iban: str) -> int:
    """
    Compute numeric_iban % 97 using the official IBAN iterative algorithm.
    numeric_iban must be a string of digits.
    """
    remainder = 0
    for ch in numeric_iban:
        remainder = (remainder * 10 + int(ch)) % 97
    return remainder


def iban_to_numeric(iban: str) -> str:
    """
    Convert IBAN letters to numbers (A=10 ... Z=35) for MOD97 check.
    """
    result = []
    for ch in iban:
        if "0" <= ch <= "9":
            result.append(ch)
        elif "A" <= ch <= "Z":
            result.append(str(ord(ch) - 55))  # A -> 10, B -> 11, ...
        else:
            raise ValueError(f"Invalid character in IBAN: {ch!r}")
    return "".join(result)


def _failure(reason: str, normalized: str = "", country: str | None = None) -> dict:
    return {
        "valid": False,
        "normalized_iban": normalized,
        "country": country,
        "reason": reason,
    }


def validate_iban(iban_input) -> dict:
    """
    Validate an IBAN and return a structured dict.

    The dict always carries ``valid``, ``normalized_iban``, ``country`` and a
    human readable ``reason`` naming the first check that failed. Never raises.
    """
    if not isinstance(iban_input, str) or not iban_input:
        return _failure("IBAN must be a non-empty string.")

    iban = normalize_iban(iban_input)

    if not _IBAN_SHAPE.fullmatch(iban):
        return _failure(
            "IBAN must be two letters, two check digits and an alphanumeric account part.",
            iban,
        )

    country = iban[:2]
    length = len(iban)

    expected_len = IBAN_LENGTHS.get(country)
    if expected_len is None:
        return _failure(f"Unsupported or unknown country code: {country}", iban, country)

    if length != expected_len:
        return _failure(
            f"Invalid length for country {country} "
            f"(expected {expected_len}, got {length}).",
            iban,
            country,
        )

    # Rearrange: move first 4 chars to the end
    rearranged = iban[4:] + iban[:4]
    remainder = iban_mod97(iban_to_numeric(rearranged))

    if remainder != 1:
        return _failure(
            f"MOD97 check failed (remainder={remainder}, expected 1).", iban, country
        )

    return {
        "valid": True,
        "normalized_iban": iban,
        "country": country,
        "reason": "IBAN is valid.",
    }


def validate(iban) -> bool:
    """Return True if ``iban`` is a well-formed IBAN with a correct checksum."""
    return validate_iban(iban)["valid"]


is_valid = validate


def format_iban(iban) -> str:
    """Group a normalized IBAN in blocks of four, e.g. ``DE89 3704 0044 ...``.

    No validation is done; anything that is not a non-empty string gives ``""``.
    """
    if not isinstance(iban, str) or not iban:
        return ""
    clean = normalize_iban(iban)
    return " ".join(
        clean[i:i + _GROUP_SIZE] for i in range(0, len(clean), _GROUP_SIZE)
    )


def get_country_code(iban) -> str | None:
    """Best-effort two letter prefix of ``iban``; None when there is none."""
    if not isinstance(iban, str) or len(iban) < 2:
        return None
    clean = normalize_iban(iban)
    if len(clean) < 2:
        return None
    return clean[:2]
