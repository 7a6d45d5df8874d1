# test_llm.py
"""Test the narrative client (no network: fake providers and httpx.MockTransport)"""

import asyncio
import json

import httpx
import pytest

from logwarden.core.errors import NarrativeServiceError
from logwarden.core.models import Anomaly
from logwarden.services.llm import (
    GeminiProvider, build_file_prompt, fallback_narrative, parse_file_narrative,
)
from logwarden.services.statistics import compute_statistics

from .conftest import NARRATIVE_REPLY, make_client


# ===== REPLY PARSING =====

def test_parse_full_reply():
    text = f"Here is my analysis:\n```json\n{NARRATIVE_REPLY}\n```\nLet me know."
    narrative = parse_file_narrative(text)

    assert narrative.summary == "Two hosts hit known-bad domains."
    assert narrative.key_findings == ["Blocked malware download", "Critical threat score"]
    assert narrative.recommended_actions == ["Isolate 10.0.0.5"]
    assert narrative.risk_level == "High"
    assert narrative.ai_confidence_score == 88


def test_parse_partial_reply():
    narrative = parse_file_narrative('{"riskLevel": "Critical"}')

    assert narrative.summary == "Analysis completed"
    assert narrative.key_findings == ["Analysis completed"]
    assert narrative.recommended_actions == ["Review results"]
    assert narrative.risk_level == "Critical"
    assert narrative.ai_confidence_score == 75


def test_parse_wrong_typed_fields():
    narrative = parse_file_narrative('{"summary": "ok", "riskLevel": 3, "keyFindings": ["a"]}')

    assert narrative.summary == "ok"
    assert narrative.risk_level == "Medium"
    assert narrative.key_findings == ["a"]

    narrative = parse_file_narrative('{"summary": ["x"], "riskLevel": "Low"}')
    assert narrative.summary == "Analysis completed"
    assert narrative.risk_level == "Low"


def test_parse_zero_confidence():
    narrative = parse_file_narrative('{"summary": "ok", "aiConfidenceScore": 0}')
    assert narrative.ai_confidence_score == 75


def test_parse_reply_without_json():
    text = "  Traffic looks mostly normal, a few blocked downloads.  "
    narrative = parse_file_narrative(text)

    assert narrative.summary == "Traffic looks mostly normal, a few blocked downloads."
    assert narrative.key_findings == []
    assert narrative.recommended_actions == ["Review the analysis results"]
    assert narrative.risk_level == "Medium"
    assert narrative.ai_confidence_score == 70


def test_parse_broken_json():
    narrative = parse_file_narrative('{"summary": "cut off...')
    assert narrative.ai_confidence_score == 70
    assert narrative.key_findings == []


def test_wire_names():
    data = parse_file_narrative(NARRATIVE_REPLY).model_dump(by_alias=True)
    assert set(data) == {"summary", "keyFindings", "recommendedActions", "riskLevel", "aiConfidenceScore"}


def test_fallback_narrative():
    narrative = fallback_narrative()
    assert narrative.risk_level == "Unknown"
    assert narrative.ai_confidence_score == 0
    assert narrative.summary.startswith("AI analysis temporarily unavailable")


# ===== PROMPT =====

def test_build_file_prompt():
    records = [
        {"srcip": "10.0.0.5", "action": "Blocked", "threatseverity": "Critical"},
        {"srcip": "10.0.0.6", "action": "Allowed"},
    ]
    anomalies = [Anomaly(reason="Critical threat severity detected", confidence=95)]
    stats = compute_statistics(anomalies)
    prompt = build_file_prompt("proxy.csv", records, anomalies, stats, 50.0)

    assert "Filename: proxy.csv" in prompt
    assert "Anomalies detected: 1 (50.00%)" in prompt
    assert "1. Critical threat severity detected (Confidence: 95%)" in prompt
    assert "Blocked requests: 1" in prompt
    assert "Unique source IPs: 2" in prompt
    assert '"aiConfidenceScore"' in prompt


# ===== CLIENT =====

def test_analyze_file():
    client = make_client()
    anomalies = [Anomaly(reason="Suspicious user agent detected", confidence=70)]
    narrative = asyncio.run(client.analyze_file(
        "proxy.csv", [{"user_agent": "curl"}], anomalies, compute_statistics(anomalies), 100.0
    ))

    assert narrative.risk_level == "High"
    assert len(client.provider.prompts) == 1


def test_retries_transient_errors():
    client = make_client(
        NarrativeServiceError("timeout", "fake", {"retryable": True}),
        NARRATIVE_REPLY,
    )
    reply = asyncio.run(client._generate_with_retry("prompt"))

    assert reply == NARRATIVE_REPLY
    assert len(client.provider.prompts) == 2


def test_gives_up_after_max_attempts():
    client = make_client(NarrativeServiceError("503", "fake", {"retryable": True}))

    with pytest.raises(NarrativeServiceError):
        asyncio.run(client._generate_with_retry("prompt"))
    assert len(client.provider.prompts) == 3


def test_no_retry_on_permanent_error():
    client = make_client(NarrativeServiceError("bad key", "fake", {"status": 401, "retryable": False}))

    with pytest.raises(NarrativeServiceError):
        asyncio.run(client._generate_with_retry("prompt"))
    assert len(client.provider.prompts) == 1


def test_empty_reply_is_an_error():
    client = make_client("   ")
    with pytest.raises(NarrativeServiceError):
        asyncio.run(client._generate_with_retry("prompt"))


def test_connection_check():
    assert asyncio.run(make_client("OK").test_connection()) is True
    assert asyncio.run(make_client(NarrativeServiceError("down", "fake")).test_connection()) is False


# ===== GEMINI PROVIDER =====

def _gemini(handler):
    return GeminiProvider(api_key="test-key", transport=httpx.MockTransport(handler))


def test_gemini_request_and_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "hello"}]}}]
        })

    reply = asyncio.run(_gemini(handler).generate("the prompt"))

    assert reply == "hello"
    assert seen["url"].endswith("/models/gemini-2.0-flash:generateContent")
    assert seen["key"] == "test-key"
    assert seen["body"] == {"contents": [{"parts": [{"text": "the prompt"}]}]}


@pytest.mark.parametrize("status, retryable", [(503, True), (429, True), (400, False)])
def test_gemini_http_errors(status, retryable):
    def handler(request):
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(NarrativeServiceError) as exc_info:
        asyncio.run(_gemini(handler).generate("prompt"))

    assert f"API error: {status} - nope" in str(exc_info.value)
    assert exc_info.value.details["retryable"] is retryable


def test_gemini_empty_candidates():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(NarrativeServiceError, match="No response content"):
        asyncio.run(_gemini(handler).generate("prompt"))


def test_gemini_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NarrativeServiceError) as exc_info:
        asyncio.run(_gemini(handler).generate("prompt"))
    assert exc_info.value.details["retryable"] is True


def test_gemini_without_key():
    provider = GeminiProvider(api_key="")
    with pytest.raises(NarrativeServiceError, match="not configured"):
        asyncio.run(provider.generate("prompt"))
