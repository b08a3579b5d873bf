"""Tests for message ingestion."""

import asyncio

from conftest import clock
from mail_intelligence.classifier import Classifier
from mail_intelligence.pipeline import ingest_messages, reclassify_store
from mail_intelligence.rules import RuleEngine


def test_ingest_classifies_stores_and_applies_rules(store, gateway, bank_message, newsletter_message):
    newsletter_message.category = "uncategorized"
    engine = RuleEngine(store, gateway, clock=clock)
    rule = engine.create_rule(
        "Financial to folder",
        [{"field": "category", "operator": "equals", "value": "financial"}],
        [{"type": "move", "value": "Finance"}],
    )

    result = asyncio.run(
        ingest_messages([bank_message, newsletter_message], Classifier(), store, engine)
    )

    assert result.total_messages == 2
    assert result.classifications["msg_bank_001"].category == "financial"
    assert store.get_message("msg_bank_001").category == "financial"
    assert store.get_message("msg_nl_001").category == "marketing"
    # rules see the category written during ingestion
    assert result.applications[0].matched_rule_ids == [rule.id]
    assert result.applications[1].matched_rule_ids == []
    assert result.actions_applied == 1
    assert result.action_failures == 0
    assert [(c.method, c.argument) for c in gateway.calls] == [("move", "Finance")]


def test_ingest_without_engine_only_stores(store, bank_message):
    result = asyncio.run(ingest_messages([bank_message], Classifier(), store))
    assert result.applications == []
    assert store.get_message(bank_message.id).importance > 0.5


def test_reclassify_store(store, bank_message):
    store.save_messages([bank_message])
    assert store.get_message(bank_message.id).category == "uncategorized"

    assert reclassify_store(Classifier(), store) == 1
    assert store.get_message(bank_message.id).category == "financial"
