"""Pattern-based categorization and importance scoring of messages."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Iterable

from .categories import ClassifierConfig, default_config
from .constants import (
    BASE_IMPORTANCE,
    BODY_PREFIX_CHARS,
    CONFIDENCE_SCALE,
    MAX_KEYWORDS,
    SENDER_RULE_MIN_COUNT,
    SENDER_RULE_MIN_SHARE,
    STRONG_SIGNAL_BOOST,
    STRONG_SIGNAL_SCORE,
    UNCATEGORIZED,
    UNSUBSCRIBE_MARKETING_BONUS,
    URGENCY_BOOST,
)
from .models import ClassificationResult, Message, SenderRuleSuggestion


def _content_text(message: Message) -> str:
    body = (message.body or "")[:BODY_PREFIX_CHARS]
    return " ".join([message.subject or "", message.snippet or "", body]).lower()


def _sender_text(message: Message) -> str:
    return " ".join([message.sender or "", message.sender_name or ""]).lower()


def dominant(counts: Counter) -> tuple[str, int]:
    """Return the most frequent key and its count; ties keep the first-seen key."""
    top_key, top_count = "", 0
    for key, count in counts.items():
        if count > top_count:
            top_key, top_count = key, count
    return top_key, top_count


class Classifier:
    """Assigns a category, confidence, importance and keyword tags to messages.

    Scoring is driven entirely by the ClassifierConfig passed in; the
    classifier keeps no state between messages.
    """

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self.config = config or default_config()

    def score_categories(self, message: Message) -> tuple[dict[str, float], list[str]]:
        """Return per-category scores (in table order) and the matched keywords."""
        content = _content_text(message)
        sender = _sender_text(message)

        scores: dict[str, float] = {}
        keywords: list[str] = []

        for category in self.config.categories:
            score = 0.0

            for pattern in category.patterns:
                if pattern.search(content):
                    score += 2 * category.weight

            for pattern in category.sender_patterns:
                if pattern.search(sender):
                    score += 3 * category.weight

            for keyword in category.keywords:
                if keyword.lower() in content:
                    score += 0.5 * category.weight
                    if keyword not in keywords:
                        keywords.append(keyword)

            scores[category.id] = score

        # An unsubscribe link is strong marketing evidence on top of the pass above.
        marketing = self.config.marketing_category
        if message.has_unsubscribe and marketing in scores:
            scores[marketing] += UNSUBSCRIBE_MARKETING_BONUS

        return scores, keywords

    def classify(self, message: Message) -> ClassificationResult:
        scores, keywords = self.score_categories(message)

        best_category = UNCATEGORIZED
        best_score = 0.0
        for category_id, score in scores.items():
            if score > best_score:
                best_category, best_score = category_id, score

        return ClassificationResult(
            category=best_category,
            confidence=min(1.0, best_score / CONFIDENCE_SCALE),
            importance=self.importance(message, best_category, best_score),
            keywords=keywords[:MAX_KEYWORDS],
        )

    def importance(self, message: Message, category: str, category_score: float) -> float:
        text = " ".join([message.subject or "", message.snippet or ""]).lower()

        value = BASE_IMPORTANCE
        for pattern in self.config.urgency_patterns:
            if pattern.search(text):
                value += URGENCY_BOOST

        value += self.config.importance_adjustments.get(category, 0.0)

        if category_score > STRONG_SIGNAL_SCORE:
            value += STRONG_SIGNAL_BOOST

        return max(0.0, min(1.0, value))

    def classify_batch(self, messages: Iterable[Message]) -> dict[str, ClassificationResult]:
        return {m.id: self.classify(m) for m in messages}

    @staticmethod
    def suggest_sender_rules(messages: Iterable[Message]) -> list[SenderRuleSuggestion]:
        """Suggest ``@domain -> category`` rules for domains with a clear majority."""
        by_domain: dict[str, Counter] = defaultdict(Counter)
        for message in messages:
            domain = message.domain
            if not domain:
                continue
            by_domain[domain][message.category] += 1

        suggestions: list[SenderRuleSuggestion] = []
        for domain, counts in by_domain.items():
            category, top = dominant(counts)
            share = top / sum(counts.values())
            if share > SENDER_RULE_MIN_SHARE and top >= SENDER_RULE_MIN_COUNT:
                suggestions.append(
                    SenderRuleSuggestion(pattern=f"@{domain}", category=category, confidence=share)
                )
        return suggestions
