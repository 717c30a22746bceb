"""Location lookup tables and helpers for the upstream ``user_location`` object.

Continent and subcontinent identifiers follow the UN M49 geoscheme used by
GA4 (e.g. Europe 150, Western Europe 155).
"""

from typing import Any

DEFAULT_CONTINENT = ("150", "155")

COUNTRY_NAME_TO_ISO = {
    "netherlands": "NL",
    "the netherlands": "NL",
    "belgium": "BE",
    "germany": "DE",
    "france": "FR",
    "united kingdom": "GB",
    "uk": "GB",
    "great britain": "GB",
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "canada": "CA",
    "australia": "AU",
    "new zealand": "NZ",
    "japan": "JP",
    "china": "CN",
    "india": "IN",
    "brazil": "BR",
    "mexico": "MX",
    "italy": "IT",
    "spain": "ES",
    "poland": "PL",
    "sweden": "SE",
    "norway": "NO",
    "denmark": "DK",
    "finland": "FI",
    "switzerland": "CH",
    "austria": "AT",
    "czech republic": "CZ",
    "czechia": "CZ",
    "hungary": "HU",
    "portugal": "PT",
    "ireland": "IE",
    "russia": "RU",
    "turkey": "TR",
    "south africa": "ZA",
    "south korea": "KR",
    "singapore": "SG",
}

# Two-letter continent codes some edge networks report in place of a country
CONTINENT_CODES = {
    "EU": ("150", None),
    "NA": ("019", "021"),
    "SA": ("019", "005"),
    "AS": ("142", None),
    "AF": ("002", None),
    "OC": ("009", None),
    "AN": ("010", None),
}

_SUBCONTINENTS = {
    # Europe
    ("150", "039"): "AD AL BA ES GR HR IT ME MK MT PT RS SI SM VA",
    ("150", "151"): "BG BY CZ HU MD PL RO RU SK UA",
    ("150", "154"): "DK EE FI GB IE IS LT LV NO SE",
    ("150", "155"): "AT BE CH DE FR LI LU MC NL",
    ("150", "145"): "CY",
    # Americas
    ("019", "005"): "AR BO BR CL CO EC GY PE PY SR UY VE",
    ("019", "013"): "BZ CR GT HN MX NI PA SV",
    ("019", "021"): "CA US",
    ("019", "029"): "AG BB BS CU DM DO HT JM TT",
    # Asia
    ("142", "030"): "CN JP KR",
    ("142", "034"): "AF IN",
    ("142", "035"): "SG TH",
    ("142", "145"): "AE SA TR",
    # Africa
    ("002", "011"): "NG",
    ("002", "014"): "KE",
    ("002", "015"): "EG MA",
    ("002", "018"): "ZA",
    # Oceania
    ("009", "053"): "AU NZ",
}

COUNTRY_CONTINENTS: dict[str, tuple[str, str]] = {
    country: ids for ids, countries in _SUBCONTINENTS.items() for country in countries.split()
}

# IANA timezone area -> (continent_id, subcontinent_id)
TIMEZONE_AREAS = {
    "Europe": ("150", "155"),
    "America": ("019", "021"),
    "Asia": ("142", "030"),
    "Africa": ("002", "015"),
    "Australia": ("009", "053"),
    "Pacific": ("009", "053"),
}

TIMEZONE_COUNTRIES = {
    "Europe/Amsterdam": "NL",
    "Europe/Brussels": "BE",
    "Europe/Berlin": "DE",
    "Europe/Paris": "FR",
    "Europe/London": "GB",
    "Europe/Madrid": "ES",
    "Europe/Rome": "IT",
    "America/New_York": "US",
    "America/Los_Angeles": "US",
    "America/Chicago": "US",
    "America/Toronto": "CA",
}

NL_PROVINCES = {
    "noord-holland": "NL-NH",
    "noord holland": "NL-NH",
    "north holland": "NL-NH",
    "nh": "NL-NH",
    "zuid-holland": "NL-ZH",
    "zuid holland": "NL-ZH",
    "south holland": "NL-ZH",
    "zh": "NL-ZH",
    "utrecht": "NL-UT",
    "ut": "NL-UT",
    "gelderland": "NL-GE",
    "ge": "NL-GE",
    "overijssel": "NL-OV",
    "ov": "NL-OV",
    "drenthe": "NL-DR",
    "dr": "NL-DR",
    "friesland": "NL-FR",
    "fryslân": "NL-FR",
    "fr": "NL-FR",
    "groningen": "NL-GR",
    "gr": "NL-GR",
    "limburg": "NL-LI",
    "li": "NL-LI",
    "noord-brabant": "NL-NB",
    "noord brabant": "NL-NB",
    "north brabant": "NL-NB",
    "nb": "NL-NB",
    "zeeland": "NL-ZE",
    "ze": "NL-ZE",
    "flevoland": "NL-FL",
    "fl": "NL-FL",
}

US_STATES = {
    "california": "US-CA",
    "new york": "US-NY",
    "texas": "US-TX",
    "florida": "US-FL",
    "illinois": "US-IL",
    "pennsylvania": "US-PA",
    "ohio": "US-OH",
    "georgia": "US-GA",
    "north carolina": "US-NC",
    "michigan": "US-MI",
    "washington": "US-WA",
    "massachusetts": "US-MA",
}

# Params holding location data; all are removed from event params
LOCATION_PARAMS = (
    "geo_latitude",
    "geo_longitude",
    "geo_city",
    "geo_region",
    "geo_country",
    "geo_continent",
    "geo_city_tz",
    "geo_country_tz",
    "city",
    "region",
    "country",
)


def country_to_iso(country: str | None) -> str | None:
    """
    Convert a free-text country name to an ISO 3166-1 alpha-2 code.

    Known names are looked up; two-letter values are treated as codes;
    anything else falls back to its first two letters uppercased.
    """
    if not country or not str(country).strip():
        return None
    value = " ".join(str(country).split())
    code = COUNTRY_NAME_TO_ISO.get(value.lower())
    if code:
        return code
    if len(value) == 2 and value.isalpha():
        return value.upper()
    return value[:2].upper()


def continent_for_country(country_id: str | None) -> tuple[str, str | None]:
    """Return (continent_id, subcontinent_id) for a country or continent code."""
    if not country_id:
        return DEFAULT_CONTINENT
    code = country_id.upper()
    if code in COUNTRY_CONTINENTS:
        return COUNTRY_CONTINENTS[code]
    if code in CONTINENT_CODES:
        return CONTINENT_CODES[code]
    return DEFAULT_CONTINENT


def continent_for_timezone(timezone: str | None) -> tuple[str, str] | None:
    """Return (continent_id, subcontinent_id) for an IANA timezone name."""
    if not isinstance(timezone, str) or "/" not in timezone:
        return None
    country = TIMEZONE_COUNTRIES.get(timezone)
    if country:
        return COUNTRY_CONTINENTS[country]
    return TIMEZONE_AREAS.get(timezone.split("/", 1)[0])


def region_id(region: str | None, country_id: str | None) -> str | None:
    """Format a region name as an ISO 3166-2 style identifier."""
    if not region or not str(region).strip():
        return None
    region = str(region).strip()
    country_id = (country_id or "").upper()

    if country_id and region.upper().startswith(country_id + "-"):
        return region.upper()
    if country_id == "NL":
        match = NL_PROVINCES.get(region.lower())
        if match:
            return match
    if country_id == "US":
        match = US_STATES.get(region.lower())
        if match:
            return match
        if len(region) == 2:
            return f"US-{region.upper()}"

    code = region.upper() if len(region) <= 3 else region[:2].upper()
    return f"{country_id}-{code}" if country_id else code


def clean_city(city: str | None) -> str | None:
    """Collapse whitespace and title-case a city name."""
    if not city or not str(city).strip():
        return None
    return " ".join(word.capitalize() for word in str(city).split())


def first_present(params: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = params.get(key)
        if value not in (None, ""):
            return value
    return None
