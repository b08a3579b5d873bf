"""Category tables and classifier configuration."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path

from .models import CategoryDefinition

# --- Built-in category table (order matters: ties go to the earlier entry) ---

DEFAULT_CATEGORIES: list[dict] = [
    {
        "id": "financial",
        "name": "Financial",
        "patterns": [
            r"statement|transaction|balance|deposit|withdrawal|payment (received|sent)|credit (card|limit)"
            r"|bank account|investment|portfolio|dividend|interest (rate|earned)|wire transfer|ach"
            r"|routing number",
            r"your .*(statement|account|balance)|account ending in \d+",
        ],
        "sender_patterns": [
            r"bank|chase|wells ?fargo|bofa|bank of america|citibank|capital ?one|discover|amex"
            r"|american express|fidelity|schwab|vanguard|td ameritrade|robinhood|coinbase|paypal"
            r"|venmo|stripe|square",
        ],
        "keywords": [
            "bank", "statement", "balance", "transaction", "payment", "credit", "debit",
            "investment", "portfolio", "dividend", "interest",
        ],
        "weight": 1.2,
    },
    {
        "id": "hr",
        "name": "HR/Recruitment",
        "patterns": [
            r"job (offer|application|opportunity)|position at|interview (scheduled|invitation|request)"
            r"|we('d| would) like to (invite|interview)|your (application|resume)|hiring manager"
            r"|recruiter|talent acquisition|compensation|benefits package|offer letter"
            r"|background check|onboarding",
            r"thank you for (applying|your interest)|unfortunately.*(not|unable).*position",
        ],
        "sender_patterns": [
            r"linkedin|indeed|glassdoor|monster|ziprecruiter|greenhouse|lever|workday|taleo|icims"
            r"|jobvite|careers?@|recruiting?@|hr@|talent@|people@",
        ],
        "keywords": [
            "job", "interview", "application", "resume", "offer", "position", "recruiter",
            "hiring", "salary", "benefits",
        ],
        "weight": 1.1,
    },
    {
        "id": "marketing",
        "name": "Marketing/Ads",
        "patterns": [
            r"unsubscribe|email preferences|manage (your )?subscriptions|opt.out|sale|% off|\$\d+ off"
            r"|promo(tion)? code|coupon|limited time|act now|don't miss|exclusive (offer|deal|access)"
            r"|flash sale|clearance|shop now|buy now|order now|free shipping",
            r"newsletter|weekly digest|monthly update|special offer|member exclusive|subscriber",
        ],
        "sender_patterns": [
            r"newsletter|promo|marketing|deals|offers|noreply|no-reply|news@|info@|hello@|contact@",
        ],
        "keywords": [
            "sale", "discount", "promo", "offer", "unsubscribe", "deal", "coupon", "newsletter",
            "exclusive", "limited",
        ],
        "weight": 0.9,
    },
    {
        "id": "important",
        "name": "Important",
        "patterns": [
            r"urgent|important|action required|immediate attention|deadline|asap|critical|priority"
            r"|time.sensitive|expires? (today|soon|tomorrow)|respond by|reply by|final notice"
            r"|last chance|account (suspended|locked|compromised)",
            r"please (respond|reply|confirm|review)|your input (needed|required)|awaiting your",
        ],
        "sender_patterns": [],
        "keywords": [
            "urgent", "important", "deadline", "asap", "critical", "priority", "action",
            "required", "immediate",
        ],
        "weight": 1.5,
    },
    {
        "id": "social",
        "name": "Social",
        "patterns": [
            r"new connection|wants to connect|accepted your (invitation|request)|endorsed you"
            r"|commented on|liked your|mentioned you|tagged you|sent you a message|new follower"
            r"|friend request|birthday|congratulations",
            r"activity on your (post|photo|video)|someone (viewed|liked|commented)",
        ],
        "sender_patterns": [
            r"linkedin|facebook|twitter|x\.com|instagram|tiktok|snapchat|pinterest|reddit|discord"
            r"|slack|whatsapp|telegram|signal|messenger",
        ],
        "keywords": [
            "connect", "follow", "like", "comment", "share", "mention", "tag", "friend",
            "profile", "notification",
        ],
        "weight": 0.8,
    },
    {
        "id": "shopping",
        "name": "Shopping",
        "patterns": [
            r"order (confirmation|shipped|delivered|placed)|your (order|package|shipment|delivery)"
            r"|tracking (number|information)|estimated delivery|shipped via|out for delivery"
            r"|has been delivered|receipt for|thank you for your (purchase|order)"
            r"|return (label|request|policy)",
            r"item in your cart|wishlist|back in stock|price drop",
        ],
        "sender_patterns": [
            r"amazon|ebay|walmart|target|bestbuy|costco|macys|nordstrom|zappos|etsy|shopify|stripe"
            r"|square|orders?@|shipping@|tracking@",
        ],
        "keywords": [
            "order", "shipping", "delivery", "tracking", "receipt", "purchase", "package", "cart",
            "checkout", "return",
        ],
        "weight": 1.0,
    },
    {
        "id": "travel",
        "name": "Travel",
        "patterns": [
            r"flight (confirmation|itinerary|booking|reservation)|hotel (reservation|booking|confirmation)"
            r"|booking confirmation|check.in|check.out|boarding pass|e.?ticket"
            r"|travel (itinerary|confirmation)|car rental|airport|departure|arrival|gate",
            r"your trip to|upcoming reservation|reservation confirmed",
        ],
        "sender_patterns": [
            r"airlines?|hotels?\.com|airbnb|booking\.com|expedia|kayak|hopper|tripadvisor|marriott"
            r"|hilton|hyatt|delta|united|american|southwest|jetblue|uber|lyft",
        ],
        "keywords": [
            "flight", "hotel", "booking", "reservation", "travel", "trip", "itinerary",
            "boarding", "departure", "arrival",
        ],
        "weight": 1.1,
    },
    {
        "id": "bills",
        "name": "Bills/Invoices",
        "patterns": [
            r"invoice|bill|payment due|amount due|due date|account summary|autopay|automatic payment"
            r"|pay now|pay online|balance due|current charges|monthly statement|utility bill"
            r"|electric bill|gas bill|water bill|internet bill|phone bill",
            r"your .* bill is ready|bill available|payment reminder|past due",
        ],
        "sender_patterns": [
            r"billing@|invoice@|payments?@|accounts?@|utility|electric|gas|water|comcast|verizon"
            r"|at&t|t-mobile|sprint|xfinity|spectrum",
        ],
        "keywords": [
            "invoice", "bill", "payment", "due", "balance", "charges", "utility", "statement",
            "autopay", "overdue",
        ],
        "weight": 1.1,
    },
]

# Each pattern adds to importance at most once.
DEFAULT_URGENCY_PATTERNS = [
    r"urgent|important|critical|priority|immediate|asap|action required|deadline",
    r"please (respond|reply|confirm)|awaiting your|your input",
]

DEFAULT_IMPORTANCE_ADJUSTMENTS = {
    "important": 0.3,
    "financial": 0.15,
    "bills": 0.1,
    "travel": 0.1,
    "marketing": -0.2,
    "social": -0.1,
}


@dataclass(frozen=True)
class ClassifierConfig:
    """Immutable category table handed to a Classifier at construction."""

    categories: tuple[CategoryDefinition, ...]
    urgency_patterns: tuple[re.Pattern, ...] = ()
    importance_adjustments: dict[str, float] = field(default_factory=dict)
    marketing_category: str = "marketing"

    @property
    def category_ids(self) -> list[str]:
        return [c.id for c in self.categories]


def _compile(patterns: list[str]) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def build_category(data: dict) -> CategoryDefinition:
    """Build a CategoryDefinition from its JSON form."""
    return CategoryDefinition(
        id=data["id"],
        name=data.get("name", data["id"]),
        patterns=_compile(data.get("patterns", [])),
        sender_patterns=_compile(data.get("sender_patterns", [])),
        keywords=tuple(data.get("keywords", [])),
        weight=float(data.get("weight", 1.0)),
    )


def build_config(data: dict) -> ClassifierConfig:
    """Build a ClassifierConfig from a JSON-style dict.

    Missing sections fall back to the built-in defaults. Raises re.error for
    malformed patterns, since the table is static configuration.
    """
    categories = data.get("categories", DEFAULT_CATEGORIES)
    return ClassifierConfig(
        categories=tuple(build_category(c) for c in categories),
        urgency_patterns=_compile(data.get("urgency_patterns", DEFAULT_URGENCY_PATTERNS)),
        importance_adjustments=dict(
            data.get("importance_adjustments", DEFAULT_IMPORTANCE_ADJUSTMENTS)
        ),
        marketing_category=data.get("marketing_category", "marketing"),
    )


def default_config() -> ClassifierConfig:
    return build_config({})


def load_config(path: Path | str) -> ClassifierConfig:
    """Load a category table from a JSON file."""
    with open(path) as f:
        return build_config(json.load(f))
