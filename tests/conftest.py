# tests/conftest.py
"""
Shared fixtures

Settings are read when logwarden.core.config is first imported, so the
environment is pointed at a throwaway data directory before that.
"""

import os
import tempfile

os.environ["LOGWARDEN_DATA_DIR"] = tempfile.mkdtemp(prefix="logwarden-tests-")
os.environ["LOGWARDEN_PASSWORD_ITERATIONS"] = "1000"
os.environ["LOGWARDEN_LLM_PROVIDER"] = "gemini"
os.environ.pop("LOGWARDEN_GEMINI_API_KEY", None)

import json
from typing import List, Optional

import pytest

from logwarden.core.database import Database
from logwarden.services.llm import NarrativeClient, NarrativeProvider


NARRATIVE_REPLY = json.dumps({
    "summary": "Two hosts hit known-bad domains.",
    "keyFindings": ["Blocked malware download", "Critical threat score"],
    "recommendedActions": ["Isolate 10.0.0.5"],
    "riskLevel": "High",
    "aiConfidenceScore": 88,
})


class FakeProvider(NarrativeProvider):
    """Provider that replays canned replies (or raises) without any network"""

    name = "fake"

    def __init__(self, replies: Optional[List] = None):
        self.replies = list(replies) if replies is not None else [NARRATIVE_REPLY]
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_client(*replies) -> NarrativeClient:
    """NarrativeClient over a FakeProvider, with no backoff delay"""
    client = NarrativeClient(provider=FakeProvider(list(replies) if replies else None), max_attempts=3)
    client.base_wait = 0
    return client


def csv_text(header: List[str], rows: List[List[str]]) -> str:
    lines = [",".join(header)] + [",".join(row) for row in rows]
    return "\n".join(lines) + "\n"


SAMPLE_HEADER = ["timestamp", "srcip", "url", "action", "status_code", "threatscore", "appclass"]

SAMPLE_ROWS = [
    ["2025-03-01 10:00:00", "10.0.0.5", "http://malware-download.exe", "Blocked", "403", "0", "Business"],
    ["2025-03-01 10:00:05", "10.0.0.6", "http://example.com/", "Allowed", "200", "0", "Business"],
    ["2025-03-01 10:00:10", "10.0.0.7", "http://news.example.org/", "Allowed", "200", "7", "Business"],
    ["2025-03-01 10:00:15", "10.0.0.6", "http://docs.example.com/", "Allowed", "200", "0", "Business"],
]


@pytest.fixture
def memory_db():
    return Database(db_path=":memory:")


@pytest.fixture
def sample_csv():
    return csv_text(SAMPLE_HEADER, SAMPLE_ROWS)
