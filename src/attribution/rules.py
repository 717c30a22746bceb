"""Static attribution rule tables."""

# Checkout redirects from these domains must not open a new attribution
PAYMENT_PROVIDER_DOMAINS = (
    "paypal.com",
    "paypal.me",
    "paypalobjects.com",
    "stripe.com",
    "checkout.stripe.com",
    "squareup.com",
    "square.com",
    "cash.app",
    "apple.com",
    "icloud.com",
    "pay.google.com",
    "payments.google.com",
    "payments.amazon.com",
    "amazon.com",
    "checkout.com",
    "adyen.com",
    "worldpay.com",
    "authorize.net",
    "braintreepayments.com",
    "razorpay.com",
    "payu.com",
    "mollie.com",
    "klarna.com",
    "afterpay.com",
    "affirm.com",
    "sezzle.com",
    "zip.co",
    "laybuy.com",
    "paymi.com",
    "venmo.com",
    "zelle.com",
    "wise.com",
    "remitly.com",
    "xoom.com",
)

# (referrer domain token, source, medium)
SEARCH_ENGINES = (
    ("google.", "google", "organic"),
    ("bing.", "bing", "organic"),
    ("yahoo.", "yahoo", "organic"),
    ("duckduckgo.", "duckduckgo", "organic"),
    ("ecosia.", "ecosia", "organic"),
    ("baidu.", "baidu", "organic"),
    ("yandex.", "yandex", "organic"),
)

SOCIAL_DOMAINS = (
    ("facebook.com", "facebook"),
    ("fb.com", "facebook"),
    ("instagram.com", "instagram"),
    ("linkedin.com", "linkedin"),
    ("lnkd.in", "linkedin"),
    ("twitter.com", "twitter"),
    ("t.co", "twitter"),
    ("x.com", "twitter"),
    ("pinterest.com", "pinterest"),
    ("youtube.com", "youtube"),
    ("tiktok.com", "tiktok"),
    ("reddit.com", "reddit"),
)

SOCIAL_SOURCES = frozenset(
    {"facebook", "instagram", "twitter", "linkedin", "pinterest", "youtube", "tiktok"}
)
SOCIAL_MEDIUMS = frozenset({"social", "sm", "social-network", "social-media"})
PAID_SEARCH_MEDIUMS = frozenset({"cpc", "ppc", "paidsearch"})
DISPLAY_MEDIUMS = frozenset({"display", "banner", "cpm"})
DIRECT_MEDIUMS = frozenset({"none", "(none)", ""})

# Event names that always credit the session's original attribution
CONVERSION_EVENTS = frozenset(
    {
        "purchase",
        "generate_lead",
        "quote_request",
        "form_conversion",
        "form_submit",
        "sign_up",
    }
)
CONVERSION_PREFIXES = ("conversion",)
