"""Ingestion orchestration - classify new mail, persist labels, run rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .classifier import Classifier
from .models import ClassificationResult, Message, RuleApplication
from .rules import RuleEngine
from .store import MessageFilter, SqliteEmailStore

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    total_messages: int = 0
    classifications: dict[str, ClassificationResult] = field(default_factory=dict)
    applications: list[RuleApplication] = field(default_factory=list)

    @property
    def actions_applied(self) -> int:
        return sum(len(a.actions) for a in self.applications)

    @property
    def action_failures(self) -> int:
        return sum(len(a.failures) for a in self.applications)


def label_messages(classifier: Classifier, messages: list[Message]) -> dict[str, ClassificationResult]:
    """Classify messages and copy category and importance onto them."""
    results = classifier.classify_batch(messages)
    for message in messages:
        result = results[message.id]
        message.category = result.category
        message.importance = result.importance
    return results


async def ingest_messages(
    messages: Iterable[Message],
    classifier: Classifier,
    store: SqliteEmailStore,
    engine: RuleEngine | None = None,
) -> IngestResult:
    """Label each message, persist it, then apply enabled rules to it.

    Rules see the freshly written category. Without an engine, messages are
    only classified and stored.
    """
    batch = list(messages)
    result = IngestResult(total_messages=len(batch))

    result.classifications = label_messages(classifier, batch)
    store.save_messages(batch)
    logger.info("Stored %d classified messages", len(batch))

    if engine is not None:
        result.applications = await engine.apply_rules_to_messages(batch)
        logger.info(
            "Applied %d rule actions (%d failed)", result.actions_applied, result.action_failures
        )

    return result


def reclassify_store(classifier: Classifier, store: SqliteEmailStore, limit: int | None = None) -> int:
    """Re-run classification over stored messages and write the labels back."""
    messages = store.get_messages(MessageFilter(limit=limit))
    for message_id, result in classifier.classify_batch(messages).items():
        store.update_classification(message_id, result.category, result.importance)
    return len(messages)
