"""User-agent parsing and device normalization for the ``device`` object."""

import re
from typing import Any

# Ordered (pattern, category); first match wins
DEVICE_CATEGORY_RULES = (
    (re.compile(r"iPad", re.I), "tablet"),
    (re.compile(r"Tablet|Kindle|Silk|PlayBook", re.I), "tablet"),
    (
        re.compile(
            r"Mobile|iPhone|iPod|Android|BlackBerry|Opera Mini|IEMobile|Windows Phone",
            re.I,
        ),
        "mobile",
    ),
)

WINDOWS_VERSIONS = {
    "10.0": "10",
    "6.3": "8.1",
    "6.2": "8",
    "6.1": "7",
    "6.0": "Vista",
    "5.1": "XP",
}

# Ordered (pattern, os_name); group 1 is the version when present
OS_RULES = (
    (re.compile(r"Windows NT (\d+\.\d+)", re.I), "Windows"),
    (re.compile(r"(?:iPhone|CPU) OS (\d+[._]\d+)", re.I), "iOS"),
    (re.compile(r"Mac OS X (\d+[._]\d+)", re.I), "macOS"),
    (re.compile(r"Android (\d+(?:\.\d+)?)", re.I), "Android"),
    (re.compile(r"Linux", re.I), "Linux"),
)

# Ordered (pattern, browser_name, excluded_token); Edge must precede Chrome
BROWSER_RULES = (
    (re.compile(r"Edg(?:e|A|iOS)?/(\d+\.\d+)", re.I), "Edge", None),
    (re.compile(r"(?:OPR|Opera)[/\s](\d+\.\d+)", re.I), "Opera", None),
    (re.compile(r"SamsungBrowser/(\d+\.\d+)", re.I), "Samsung Internet", None),
    (re.compile(r"Chrome/(\d+\.\d+)", re.I), "Chrome", None),
    (re.compile(r"Firefox/(\d+\.\d+)", re.I), "Firefox", None),
    (re.compile(r"Version/(\d+\.\d+).*Safari/", re.I), "Safari", "Chrome"),
    (re.compile(r"MSIE (\d+\.\d+)", re.I), "Internet Explorer", None),
    (re.compile(r"Trident.*rv:(\d+\.\d+)", re.I), "Internet Explorer", None),
)

# Ordered (pattern, brand, model template); group 1 fills the template
MODEL_RULES = (
    (re.compile(r"iPhone", re.I), "Apple", "iPhone"),
    (re.compile(r"iPad", re.I), "Apple", "iPad"),
    (re.compile(r"SM-([A-Z0-9]+)", re.I), "Samsung", "SM-{0}"),
    (re.compile(r"Pixel (\d+)", re.I), "Google", "Pixel {0}"),
)

CATEGORY_MAP = {
    "phone": "mobile",
    "smartphone": "mobile",
    "mobile phone": "mobile",
    "computer": "desktop",
    "pc": "desktop",
    "laptop": "desktop",
    "tv": "smart tv",
    "smarttv": "smart tv",
    "watch": "wearable",
    "smart watch": "wearable",
}

OS_NAME_MAP = (
    ("windows", "Windows"),
    ("win32", "Windows"),
    ("win64", "Windows"),
    ("iphone os", "iOS"),
    ("ipad os", "iPadOS"),
    ("ipados", "iPadOS"),
    ("mac os", "macOS"),
    ("macos", "macOS"),
)

BROWSER_NAME_MAP = (
    ("google chrome", "Chrome"),
    ("mozilla firefox", "Firefox"),
    ("microsoft edge", "Edge"),
    ("samsung internet", "Samsung Internet"),
)

# Generic names used when precise device data is not allowed
GENERIC_OS = (
    ("windows", "Windows"),
    ("mac", "macOS"),
    ("darwin", "macOS"),
    ("ios", "iOS"),
    ("ipad", "iOS"),
    ("android", "Android"),
    ("linux", "Linux"),
)
GENERIC_BROWSERS = (
    ("edge", "Edge"),
    ("opera", "Opera"),
    ("chrome", "Chrome"),
    ("firefox", "Firefox"),
    ("safari", "Safari"),
)
SCREEN_BUCKETS = ((768, "mobile"), (1024, "tablet"), (1366, "laptop"), (1920, "desktop"))
SCREEN_BUCKET_NAMES = frozenset(name for _, name in SCREEN_BUCKETS) | {"large", "unknown"}

# Params holding device data; all are removed from event params
DEVICE_PARAMS = (
    "device_type",
    "device_category",
    "is_mobile",
    "is_tablet",
    "is_desktop",
    "browser_name",
    "browser_version",
    "os_name",
    "os_version",
    "screen_resolution",
    "screen_width",
    "screen_height",
    "viewport_width",
    "viewport_height",
    "device_model",
    "device_brand",
    "mobile_model_name",
    "mobile_brand_name",
    "language",
    "accept_language",
)

_RESOLUTION = re.compile(r"^(\d+)\s*[x*×]\s*(\d+)$", re.I)


def parse_user_agent(user_agent: str | None) -> dict[str, str]:
    """
    Extract device facts from a raw user-agent string.

    Args:
        user_agent: Raw User-Agent header value

    Returns:
        Dict with device_type, os_name, os_version, browser_name,
        browser_version, device_brand and device_model where detected
    """
    if not isinstance(user_agent, str) or not user_agent:
        return {}

    parsed: dict[str, str] = {"device_type": "desktop"}
    for pattern, category in DEVICE_CATEGORY_RULES:
        if pattern.search(user_agent):
            parsed["device_type"] = category
            break

    for pattern, os_name in OS_RULES:
        match = pattern.search(user_agent)
        if match:
            parsed["os_name"] = os_name
            if match.groups():
                version = match.group(1).replace("_", ".")
                if os_name == "Windows":
                    version = WINDOWS_VERSIONS.get(version, version)
                parsed["os_version"] = version
            break

    for pattern, browser, excluded in BROWSER_RULES:
        match = pattern.search(user_agent)
        if match and not (excluded and excluded.lower() in user_agent.lower()):
            parsed["browser_name"] = browser
            parsed["browser_version"] = match.group(1)
            break

    if parsed["device_type"] in ("mobile", "tablet"):
        for pattern, brand, template in MODEL_RULES:
            match = pattern.search(user_agent)
            if match:
                parsed["device_brand"] = brand
                parsed["device_model"] = template.format(*match.groups())
                break

    return parsed


def _lookup(value: str, table: tuple[tuple[str, str], ...], default: str) -> str:
    lowered = value.lower()
    for token, name in table:
        if token in lowered:
            return name
    return default


def normalize_category(category: Any) -> str:
    value = str(category).strip().lower()
    return CATEGORY_MAP.get(value, value)


def normalize_language(language: Any) -> str | None:
    """Reduce a locale or Accept-Language value to its primary subtag."""
    if not language:
        return None
    primary = str(language).split(",")[0].split(";")[0].strip().lower()
    return primary.split("-")[0] or None


def normalize_resolution(resolution: Any) -> str | None:
    if not resolution:
        return None
    match = _RESOLUTION.match(str(resolution).strip())
    if match:
        return f"{match.group(1)}x{match.group(2)}"
    return str(resolution)


def normalize_version(version: Any) -> str | None:
    if version in (None, ""):
        return None
    match = re.search(r"\d+(?:\.\d+)*", str(version))
    return match.group(0) if match else str(version)


def major_version(version: Any) -> str | None:
    if version in (None, ""):
        return None
    match = re.match(r"\d+", str(version))
    return match.group(0) if match else None


def screen_bucket(resolution: Any) -> str:
    """Map an exact resolution to a coarse screen-size bucket."""
    value = str(resolution or "").strip().lower()
    if value in SCREEN_BUCKET_NAMES:
        return value
    match = _RESOLUTION.match(value)
    if not match:
        return "unknown"
    width = int(match.group(1))
    for limit, name in SCREEN_BUCKETS:
        if width <= limit:
            return name
    return "large"


def generic_os(os_name: Any) -> str:
    return _lookup(str(os_name or ""), GENERIC_OS, "Other")


def generic_browser(browser_name: Any) -> str:
    return _lookup(str(browser_name or ""), GENERIC_BROWSERS, "Other")


def build_device(params: dict[str, Any], user_agent: str | None, accept_language: str | None = None) -> dict[str, Any]:
    """
    Build the full-precision device object from params and the user agent.

    Structured params win over values parsed from the user agent.

    Args:
        params: Event params (not modified)
        user_agent: Raw user agent, from headers or params
        accept_language: Accept-Language header, used when params lack a language

    Returns:
        Dict of DeviceInfo fields with empty values omitted
    """
    parsed = parse_user_agent(user_agent)
    device: dict[str, Any] = {}

    if params.get("device_type") or params.get("device_category"):
        device["category"] = normalize_category(
            params.get("device_type") or params.get("device_category")
        )
    elif params.get("is_mobile"):
        device["category"] = "mobile"
    elif params.get("is_tablet"):
        device["category"] = "tablet"
    elif params.get("is_desktop"):
        device["category"] = "desktop"
    elif parsed.get("device_type"):
        device["category"] = parsed["device_type"]

    device["language"] = normalize_language(
        params.get("language") or params.get("accept_language") or accept_language
    )

    if params.get("screen_resolution"):
        device["screen_resolution"] = normalize_resolution(params["screen_resolution"])
    elif params.get("screen_width") and params.get("screen_height"):
        device["screen_resolution"] = f"{params['screen_width']}x{params['screen_height']}"

    os_name = params.get("os_name") or parsed.get("os_name")
    if os_name:
        device["operating_system"] = _lookup(str(os_name).strip(), OS_NAME_MAP, str(os_name).strip())
    device["operating_system_version"] = normalize_version(
        params.get("os_version") or parsed.get("os_version")
    )

    browser = params.get("browser_name") or parsed.get("browser_name")
    if browser:
        device["browser"] = _lookup(str(browser).strip(), BROWSER_NAME_MAP, str(browser).strip())
    device["browser_version"] = normalize_version(
        params.get("browser_version") or parsed.get("browser_version")
    )

    model = params.get("device_model") or params.get("mobile_model_name") or parsed.get("device_model")
    brand = params.get("device_brand") or params.get("mobile_brand_name") or parsed.get("device_brand")
    device["model"] = str(model).strip() if model else None
    device["brand"] = str(brand).strip() if brand else None

    return {key: value for key, value in device.items() if value}


def generalize_device(device: dict[str, Any]) -> dict[str, Any]:
    """
    Coarsen a device object so it cannot serve as a fingerprint.

    Keeps category and language, buckets the screen size, maps OS and browser
    to generic names with major versions only, and drops model and brand.
    Applying it to an already generalized device returns it unchanged.
    """
    general: dict[str, Any] = {
        "category": device.get("category"),
        "language": device.get("language"),
    }
    if device.get("screen_resolution"):
        general["screen_resolution"] = screen_bucket(device["screen_resolution"])
    if device.get("operating_system"):
        general["operating_system"] = generic_os(device["operating_system"])
    general["operating_system_version"] = major_version(device.get("operating_system_version"))
    if device.get("browser"):
        general["browser"] = generic_browser(device["browser"])
    general["browser_version"] = major_version(device.get("browser_version"))
    return {key: value for key, value in general.items() if value}
