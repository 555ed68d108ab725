import re
from typing import List, Optional

from marketpulse.taxonomy.catalog import Trim


VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
YEAR_IN_TEXT = re.compile(r"\b(19[5-9]\d|20\d{2})\b")

MIN_PLAUSIBLE_PRICE = 15000
MAX_PLAUSIBLE_PRICE = 5000000

# Position 10; the 30-year cycle repeats, so each code maps to two candidate years.
VIN_YEAR_CODES = {
    "A": 2010, "B": 2011, "C": 2012, "D": 2013, "E": 2014,
    "F": 2015, "G": 2016, "H": 2017, "J": 2018, "K": 2019,
    "L": 2020, "M": 2021, "N": 2022, "P": 2023, "R": 2024,
    "S": 2025, "T": 2026, "V": 2027, "W": 2028, "X": 2029,
    "Y": 2030, "1": 2001, "2": 2002, "3": 2003, "4": 2004,
    "5": 2005, "6": 2006, "7": 2007, "8": 2008, "9": 2009,
}


def clean_vin(vin: Optional[str]) -> Optional[str]:
    if not vin:
        return None
    return re.sub(r"[\s-]", "", vin).upper() or None


def is_valid_vin(vin: Optional[str]) -> bool:
    cleaned = clean_vin(vin)
    return bool(cleaned and VIN_PATTERN.match(cleaned))


def normalize_vin(vin: Optional[str]) -> Optional[str]:
    """Upper-cased VIN when well-formed, else ``None``."""
    cleaned = clean_vin(vin)
    return cleaned if cleaned and VIN_PATTERN.match(cleaned) else None


def vin_model_years(vin: Optional[str]) -> List[int]:
    cleaned = normalize_vin(vin)
    if not cleaned:
        return []
    year = VIN_YEAR_CODES.get(cleaned[9])
    if year is None:
        return []
    return [year - 30, year]


def year_from_text(text: Optional[str]) -> Optional[int]:
    match = YEAR_IN_TEXT.search(text or "")
    return int(match.group(1)) if match else None


def check_vin(vin: Optional[str]) -> Optional[str]:
    if vin and not is_valid_vin(vin):
        return f"Invalid VIN format: {vin}"
    return None


def check_vin_year(vin: Optional[str], year: Optional[int]) -> Optional[str]:
    candidates = vin_model_years(vin)
    if not candidates or year is None:
        return None
    if any(abs(candidate - year) <= 1 for candidate in candidates):
        return None
    return f"VIN model year {candidates[-1]} does not match listed year {year}"


def check_model_year(trim: Optional[Trim], trim_name: Optional[str], year: Optional[int]) -> Optional[str]:
    if trim is None or year is None or trim.covers(year):
        return None
    return f"Invalid model year combination: {year} {trim_name or trim.name}"


def check_price(price: Optional[float], trim: Optional[Trim] = None) -> Optional[str]:
    if price is None:
        return "Missing price"
    if price < MIN_PLAUSIBLE_PRICE or price > MAX_PLAUSIBLE_PRICE:
        return f"Unrealistic price: ${price:,.0f}"
    if trim is not None and trim.min_price is not None and price < trim.min_price:
        return f"Unrealistic price for {trim.name}: ${price:,.0f}"
    return None
