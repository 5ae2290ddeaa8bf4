"""
Tests for prompt construction and log formatting.
"""

import json
import logging

import pytest

from buyer_insights.logging_config import JSONFormatter
from buyer_insights.prompts import SYSTEM_PROMPT, build_context_block, build_messages


def test_context_block_defaults():
    block = build_context_block(None)

    assert block.startswith("BUYER CONTEXT:")
    assert "- Name: Unknown" in block
    assert "- Financing: Not Confirmed" in block


def test_stage_name():
    block = build_context_block({"current_stage": 2})
    assert "Stage 2 - Offer Strategy" in block


def test_pre_approval_amount_requires_approval():
    approved = build_context_block({"pre_approval_status": "Pre-Approved", "pre_approval_amount": 550000})
    pending = build_context_block({"pre_approval_status": "In Progress", "pre_approval_amount": 550000})

    assert "- Pre-Approval Amount: $550,000" in approved
    assert "Pre-Approval Amount" not in pending
    assert "- Pre-Approval Status: In Progress" in pending


def test_build_messages_intents():
    artifact = build_messages("Draft update for buyer", "artifact", {"name": "Dana"})
    thinking = build_messages("What should I prioritize next?", "thinking")
    actions = build_messages("", "actions")

    assert artifact[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert "AGENT COMMAND: Draft update for buyer" in artifact[1]["content"]
    assert "AGENT QUESTION: What should I prioritize next?" in thinking[1]["content"]
    assert "JSON array" in actions[1]["content"]


def test_unknown_intent():
    with pytest.raises(ValueError):
        build_messages("Hi", "poem")


def test_json_formatter_merges_extra_data():
    record = logging.LogRecord("buyer_insights.test", logging.INFO, __file__, 1, "Cache warmed", None, None)
    record.extra_data = {"subjects": 3}

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Cache warmed"
    assert data["level"] == "INFO"
    assert data["subjects"] == 3
