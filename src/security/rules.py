"""Bot detection rule tables.

Pattern tables are ``(compiled pattern, reason)`` pairs evaluated by
``match_rules``; the remaining entries are static lists.
"""

import ipaddress
import re

_I = re.IGNORECASE


def _rules(*pairs: tuple[str, str]) -> tuple[tuple[re.Pattern, str], ...]:
    return tuple((re.compile(pattern, _I), reason) for pattern, reason in pairs)


USER_AGENT_RULES = _rules(
    # Generic crawlers
    (r"bot\b", "generic_bot"),
    (r"crawl", "crawler"),
    (r"spider", "spider"),
    (r"scraper", "scraper"),
    # Search engines
    (r"googlebot", "search_engine_bot"),
    (r"bingbot", "search_engine_bot"),
    (r"yahoo", "search_engine_bot"),
    (r"duckduckbot", "search_engine_bot"),
    (r"baiduspider", "search_engine_bot"),
    (r"yandexbot", "search_engine_bot"),
    (r"sogou", "search_engine_bot"),
    (r"applebot", "search_engine_bot"),
    # Social previews
    (r"facebookexternalhit", "social_bot"),
    (r"twitterbot", "social_bot"),
    (r"linkedinbot", "social_bot"),
    (r"whatsapp", "social_bot"),
    (r"telegrambot", "social_bot"),
    (r"discordbot", "social_bot"),
    # SEO tools
    (r"semrushbot", "seo_tool"),
    (r"ahrefsbot", "seo_tool"),
    (r"mj12bot", "seo_tool"),
    (r"dotbot", "seo_tool"),
    (r"screaming frog", "seo_tool"),
    (r"seobility", "seo_tool"),
    (r"serpstatbot", "seo_tool"),
    (r"ubersuggest", "seo_tool"),
    (r"sistrix", "seo_tool"),
    # Headless browsers and automation
    (r"headlesschrome", "headless_browser"),
    (r"phantomjs", "headless_browser"),
    (r"slimerjs", "headless_browser"),
    (r"htmlunit", "headless_browser"),
    (r"selenium", "automation_tool"),
    (r"webdriver", "automation_tool"),
    (r"puppeteer", "automation_tool"),
    (r"playwright", "automation_tool"),
    (r"cypress", "automation_tool"),
    # Monitoring
    (r"pingdom", "monitoring"),
    (r"uptimerobot", "monitoring"),
    (r"statuscake", "monitoring"),
    (r"site24x7", "monitoring"),
    (r"newrelic", "monitoring"),
    (r"gtmetrix", "monitoring"),
    (r"pagespeed", "monitoring"),
    (r"lighthouse", "monitoring"),
    # HTTP libraries
    (r"python", "http_library"),
    (r"requests", "http_library"),
    (r"curl", "http_library"),
    (r"wget", "http_library"),
    (r"apache-httpclient", "http_library"),
    (r"java/", "http_library"),
    (r"okhttp", "http_library"),
    (r"node\.js", "http_library"),
    (r"go-http-client", "http_library"),
    (r"http_request", "http_library"),
    (r"ruby", "http_library"),
    (r"perl", "http_library"),
    (r"libwww", "http_library"),
    # AI crawlers
    (r"gptbot", "ai_crawler"),
    (r"chatgpt", "ai_crawler"),
    (r"claudebot", "ai_crawler"),
    (r"anthropic", "ai_crawler"),
    (r"openai", "ai_crawler"),
    (r"perplexity", "ai_crawler"),
    (r"cohere", "ai_crawler"),
    # Research
    (r"researchbot", "research_bot"),
    (r"academicbot", "research_bot"),
    (r"university", "research_bot"),
    # Suspicious shapes
    (r"^mozilla/5\.0$", "bare_mozilla"),
    (r"compatible;?\s*$", "bare_compatible"),
    (r"prerender", "prerender"),
)

# A real browser UA carries at least one of these
BROWSER_TOKENS = ("Mozilla/", "AppleWebKit", "Gecko", "Chrome", "Safari", "Firefox", "Opera", "Edg")
SIMPLE_USER_AGENT = re.compile(r"^[a-z\s]+$")
MIN_USER_AGENT_LENGTH = 10

PLACEHOLDER_COUNTRIES = frozenset({"xx", "t1", "a1", "a2", "o1", "zz", "unknown"})
GENERIC_CITIES = frozenset({"", "unknown", "(not set)", "localhost", "n/a"})

# (city, country) pairs hosting major datacenters
DATACENTER_LOCATIONS = frozenset(
    {
        ("mountain view", "us"),
        ("charlotte", "us"),
        ("ashburn", "us"),
        ("santa clara", "us"),
        ("palo alto", "us"),
        ("menlo park", "us"),
        ("fremont", "us"),
        ("sunnyvale", "us"),
        ("dublin", "ie"),
        ("oregon", "us"),
        ("virginia", "us"),
        ("seoul", "kr"),
        ("singapore", "sg"),
        ("mumbai", "in"),
        ("frankfurt", "de"),
        ("london", "gb"),
    }
)

# Autonomous systems of cloud and hosting providers
BOT_ASNS = frozenset(
    {
        "14618",  # Amazon
        "16509",  # Amazon
        "15169",  # Google
        "396982",  # Google Cloud
        "8075",  # Microsoft
        "14061",  # DigitalOcean
        "16276",  # OVH
        "24940",  # Hetzner
        "63949",  # Linode
        "20473",  # Vultr
        "45102",  # Alibaba
        "31898",  # Oracle
        "13335",  # Cloudflare
    }
)

AUTOMATION_HEADERS = (
    "x-selenium",
    "x-puppeteer",
    "x-playwright",
    "x-webdriver",
    "x-automation",
    "x-headless",
)

SCROLL_MILESTONES = frozenset({25, 50, 75, 90, 100})
SUSPICIOUS_TIMEZONES = frozenset({"utc", "gmt", "utc+0", "gmt+0"})
CLIENT_BOT_SCORE_LIMIT = 35

EVENT_CONTENT_RULES = _rules(
    (r"puppeteer", "automation_tool_in_event"),
    (r"playwright", "automation_tool_in_event"),
    (r"cypress", "automation_tool_in_event"),
    (r"testcafe", "automation_tool_in_event"),
    (r"nightwatch", "automation_tool_in_event"),
    (r"webdriverio", "automation_tool_in_event"),
    (r"headless", "headless_in_event"),
    (r"selenium", "automation_tool_in_event"),
)

REFERRER_RULES = _rules(
    (r"google\.com/search", "search_result_referrer"),
    (r"bing\.com/search", "search_result_referrer"),
    (r"yahoo\.com/search", "search_result_referrer"),
    (r"bot", "bot_referrer"),
    (r"crawl", "bot_referrer"),
    (r"spider", "bot_referrer"),
)

AUTOMATION_CLIENT_RULES = _rules(
    (r"curl", "automation_client"),
    (r"wget", "automation_client"),
    (r"python", "automation_client"),
    (r"node", "automation_client"),
    (r"automation", "automation_client"),
    (r"postman", "automation_client"),
    (r"insomnia", "automation_client"),
    (r"selenium", "automation_client"),
    (r"webdriver", "automation_client"),
    (r"puppeteer", "automation_client"),
    (r"playwright", "automation_client"),
    (r"phantom", "automation_client"),
)


def _networks(*cidrs: str) -> tuple[ipaddress.IPv4Network, ...]:
    return tuple(ipaddress.ip_network(cidr) for cidr in cidrs)


KNOWN_BOT_NETWORKS = _networks(
    "66.249.64.0/19",  # Googlebot
    "157.55.32.0/20",  # Bingbot
    "40.77.167.0/24",  # Bingbot
    "207.46.0.0/16",  # Bingbot
    "72.30.0.0/16",  # Yahoo
    "98.137.149.56/29",  # Yahoo
    "74.6.136.0/26",  # Yahoo
)

CLOUD_NETWORKS = _networks(
    "13.107.42.0/24",  # Azure
    "20.36.0.0/14",  # Azure
    "40.74.0.0/15",  # Azure
    "52.0.0.0/11",  # AWS
    "54.0.0.0/15",  # AWS
    "35.0.0.0/8",  # Google Cloud
    "34.0.0.0/9",  # Google Cloud
    "104.16.0.0/12",  # Cloudflare
    "172.64.0.0/13",  # Cloudflare
    "173.245.48.0/20",  # Cloudflare
    "103.21.244.0/22",  # Cloudflare
    "103.22.200.0/22",  # Cloudflare
    "103.31.4.0/22",  # Cloudflare
    "141.101.64.0/18",  # Cloudflare
    "108.162.192.0/18",  # Cloudflare
    "190.93.240.0/20",  # Cloudflare
    "188.114.96.0/20",  # Cloudflare
    "197.234.240.0/22",  # Cloudflare
    "198.41.128.0/17",  # Cloudflare
    "162.158.0.0/15",  # Cloudflare
    "104.24.0.0/14",  # Cloudflare
    "172.67.0.0/16",  # Cloudflare
    "131.0.72.0/22",  # Cloudflare
)

# Weight each positive signal adds to the verdict score
SIGNAL_WEIGHTS = {
    "user_agent": 30,
    "geo": 15,
    "edge_reputation": 25,
    "headers": 20,
    "telemetry": 40,
    "behavior": 20,
    "event_content": 40,
    "known_bot_ip": 50,
    "referrer": 10,
    "cloud_network": 15,
    "automation_client": 25,
}
MAX_SCORE = 100


def match_rules(value: str | None, rules: tuple[tuple[re.Pattern, str], ...]) -> list[str]:
    """
    Return the distinct reasons of every rule matching ``value``.

    Args:
        value: Text to test (None matches nothing)
        rules: (pattern, reason) pairs

    Returns:
        Reasons in table order, without duplicates
    """
    if not value:
        return []
    reasons: list[str] = []
    for pattern, reason in rules:
        if reason not in reasons and pattern.search(value):
            reasons.append(reason)
    return reasons


def ip_in_networks(ip: str | None, networks: tuple) -> bool:
    """Whether an IPv4/IPv6 address falls inside any of the networks."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address.version == network.version and address in network for network in networks)
