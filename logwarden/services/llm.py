# logwarden/services/llm.py
"""
LLM client for the file-level security narrative
Builds one prompt per analysed file and parses the reply into a FileNarrative

Supports three backends (settings.llm_provider):
- gemini: Google Generative Language REST API (generateContent)
- ollama: local models served by Ollama
- openrouter: OpenAI-compatible cloud API
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any

import httpx
import ollama
import openai
from openai import AsyncOpenAI

from ..core.config import settings
from ..core.errors import NarrativeServiceError
from ..core.models import Anomaly, AnomalyStatistics, FileNarrative, LogRecord
from ..core.rules import DEFAULT_RULE_CONFIG

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class NarrativeProvider(ABC):
    """A text-generation backend: prompt in, free-form text out"""

    name: str = "base"

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate a reply for one prompt

        Raises:
            NarrativeServiceError: On any failure; details["retryable"]
                tells the client whether another attempt makes sense
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(provider={self.name})>"


class GeminiProvider(NarrativeProvider):
    """Gemini over plain HTTP"""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.llm_timeout
        self.transport = transport

        if not self.api_key:
            logger.warning("LOGWARDEN_GEMINI_API_KEY not set. LLM analysis will be disabled.")

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise NarrativeServiceError("Gemini API key not configured", self.name)

        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        headers = {"Content-Type": "application/json", "X-goog-api-key": self.api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(url, json=body, headers=headers)
            except httpx.TimeoutException:
                raise NarrativeServiceError("Request timed out", self.name, {"retryable": True})
            except httpx.RequestError as e:
                raise NarrativeServiceError(
                    f"Network error: {e}", self.name, {"retryable": True}
                )

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {}).get("message", "Unknown error")
            except ValueError:
                error = response.text[:200]
            raise NarrativeServiceError(
                f"API error: {response.status_code} - {error}",
                self.name,
                {"status": response.status_code, "retryable": response.status_code in RETRYABLE_STATUS}
            )

        try:
            data = response.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise NarrativeServiceError("No response content from Gemini API", self.name)


class OllamaProvider(NarrativeProvider):
    """Local model through the Ollama server"""

    name = "ollama"

    def __init__(self, model: Optional[str] = None, host: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or settings.ollama_model
        self.host = host or settings.ollama_host
        self.timeout = timeout or settings.llm_timeout
        self.client = ollama.AsyncClient(host=self.host)

    async def generate(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.chat(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    options={
                        "temperature": settings.llm_temperature,
                        "num_predict": settings.llm_max_tokens,
                    },
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise NarrativeServiceError("Request timed out", self.name, {"retryable": True})
        except ollama.ResponseError as e:
            raise NarrativeServiceError(
                f"Ollama error: {e.error}",
                self.name,
                {"status": e.status_code, "retryable": e.status_code in RETRYABLE_STATUS}
            )
        except (ConnectionError, httpx.RequestError) as e:
            raise NarrativeServiceError(
                f"Cannot reach Ollama at {self.host}: {e}", self.name, {"retryable": True}
            )

        return response["message"]["content"]


class OpenRouterProvider(NarrativeProvider):
    """Cloud models through OpenRouter's OpenAI-compatible API"""

    name = "openrouter"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key or settings.openrouter_api_key
        self.model = model or settings.openrouter_model
        self.client = None

        if self.api_key:
            self.client = AsyncOpenAI(
                base_url=base_url or settings.openrouter_base_url,
                api_key=self.api_key,
                timeout=timeout or settings.llm_timeout,
                max_retries=0,
            )
        else:
            logger.warning("LOGWARDEN_OPENROUTER_API_KEY not set. LLM analysis will be disabled.")

    async def generate(self, prompt: str) -> str:
        if self.client is None:
            raise NarrativeServiceError("OpenRouter API key not configured", self.name)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                extra_headers={"X-Title": settings.app_name},
            )
        except (openai.APITimeoutError, openai.APIConnectionError) as e:
            raise NarrativeServiceError(f"Request failed: {e}", self.name, {"retryable": True})
        except openai.APIStatusError as e:
            raise NarrativeServiceError(
                f"API error: {e.status_code}",
                self.name,
                {"status": e.status_code, "retryable": e.status_code in RETRYABLE_STATUS}
            )

        if not response.choices or not response.choices[0].message.content:
            raise NarrativeServiceError("Empty response from OpenRouter", self.name)
        return response.choices[0].message.content


PROVIDERS = {
    "gemini": GeminiProvider,
    "ollama": OllamaProvider,
    "openrouter": OpenRouterProvider,
}


# ========================================
# PROMPT & RESPONSE HANDLING
# ========================================

def build_file_prompt(
    filename: str,
    records: List[LogRecord],
    anomalies: List[Anomaly],
    stats: AnomalyStatistics,
    anomaly_percentage: float
) -> str:
    """Prompt asking for a JSON narrative of the whole file"""
    config = DEFAULT_RULE_CONFIG
    types = ", ".join(f"{label}: {count}" for label, count in stats.anomaly_types.items())
    samples = "\n".join(
        f"{i}. {a.reason} (Confidence: {a.confidence}%)"
        for i, a in enumerate(anomalies[:5], start=1)
    )
    blocked = sum(1 for r in records if r.get("action") == config.blocked_action)
    allowed = sum(1 for r in records if r.get("action") == config.allowed_action)
    critical = sum(1 for r in records if r.get("threatseverity") == config.critical_severity)
    unique_ips = len({r.get("srcip") for r in records})

    return f"""You are a cybersecurity expert analyzing a log file. Please provide a comprehensive analysis of the entire file.

FILE INFORMATION:
- Filename: {filename}
- Total log entries: {len(records)}
- Anomalies detected: {stats.total_anomalies} ({anomaly_percentage:.2f}%)
- Average confidence: {stats.average_confidence}%

ANOMALY STATISTICS:
- High confidence anomalies: {stats.high_confidence_anomalies}
- Anomaly types: {types}

SAMPLE ANOMALIES (first 5):
{samples}

LOG FILE OVERVIEW:
- Total entries analyzed: {len(records)}
- Blocked requests: {blocked}
- Allowed requests: {allowed}
- Critical threats: {critical}
- Unique source IPs: {unique_ips}

Please provide a comprehensive analysis in the following JSON format:
{{
  "summary": "A 2-3 sentence overview of the security posture and main concerns",
  "keyFindings": ["Finding 1", "Finding 2", "Finding 3"],
  "recommendedActions": ["Action 1", "Action 2", "Action 3"],
  "riskLevel": "Low/Medium/High/Critical",
  "aiConfidenceScore": 85
}}

Focus on:
1. Overall security posture assessment
2. Most critical threats identified
3. Patterns or trends in the anomalies
4. Immediate actions needed
5. Long-term security recommendations"""


def _extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Decode the span from the first '{' to the last '}' if it is a JSON object"""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _string(value: Any, default: str) -> str:
    if isinstance(value, str) and value:
        return value
    return default


def _string_list(value: Any, default: List[str]) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return default


def parse_file_narrative(text: str) -> FileNarrative:
    """
    Turn a free-form model reply into a FileNarrative

    A JSON object anywhere in the text is used field by field, with
    defaults for anything missing. Without one, the whole reply becomes
    the summary.
    """
    parsed = _extract_json(text)

    if parsed is None:
        return FileNarrative(
            summary=text.strip(),
            key_findings=[],
            recommended_actions=["Review the analysis results"],
            risk_level="Medium",
            ai_confidence_score=70,
        )

    # A zero score counts as missing
    score = parsed.get("aiConfidenceScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not score:
        score = 75

    return FileNarrative(
        summary=_string(parsed.get("summary"), "Analysis completed"),
        key_findings=_string_list(parsed.get("keyFindings"), ["Analysis completed"]),
        recommended_actions=_string_list(parsed.get("recommendedActions"), ["Review results"]),
        risk_level=_string(parsed.get("riskLevel"), "Medium"),
        ai_confidence_score=score,
    )


def fallback_narrative() -> FileNarrative:
    """Stand-in narrative used when the provider call fails"""
    return FileNarrative(
        summary="AI analysis temporarily unavailable. Please review the anomalies manually.",
        key_findings=["Analysis failed - check backend logs for details"],
        recommended_actions=["Review anomalies manually and check system configuration"],
        risk_level="Unknown",
        ai_confidence_score=0,
    )


# ========================================
# CLIENT
# ========================================

class NarrativeClient:
    """
    Writes the security narrative for an analysed file

    One provider call per file (not per line). Transient failures are
    retried with exponential backoff; anything else raises
    NarrativeServiceError straight away.
    """

    def __init__(self, provider: Optional[NarrativeProvider] = None, max_attempts: Optional[int] = None):
        self.provider = provider or PROVIDERS[settings.llm_provider]()
        self.max_attempts = max_attempts or settings.llm_max_attempts
        self.base_wait = 2  # seconds

        logger.info(f"Narrative client initialized ({self.provider.name})")

    async def analyze_file(
        self,
        filename: str,
        records: List[LogRecord],
        anomalies: List[Anomaly],
        stats: AnomalyStatistics,
        anomaly_percentage: float
    ) -> FileNarrative:
        """
        Ask the model for a narrative of the whole file

        Raises:
            NarrativeServiceError: If the provider fails after retries
        """
        prompt = build_file_prompt(filename, records, anomalies, stats, anomaly_percentage)
        reply = await self._generate_with_retry(prompt)
        return parse_file_narrative(reply)

    async def _generate_with_retry(self, prompt: str) -> str:
        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.debug(f"Sending request to {self.provider.name} (attempt {attempt}/{self.max_attempts})")
                reply = await self.provider.generate(prompt)
                if not reply or not reply.strip():
                    raise NarrativeServiceError("Empty response", self.provider.name)
                logger.debug(f"Got response ({len(reply)} chars)")
                return reply

            except NarrativeServiceError as e:
                if e.details.get("retryable") and attempt < self.max_attempts:
                    wait_time = self.base_wait * (2 ** (attempt - 1))
                    logger.warning(
                        f"LLM request failed (attempt {attempt}/{self.max_attempts}): {e}. "
                        f"Retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                    continue
                logger.error(f"LLM generation failed: {e}")
                raise

    async def test_connection(self) -> bool:
        """Send a tiny prompt to check the provider is reachable"""
        try:
            reply = await self.provider.generate("Reply with the single word OK.")
            return bool(reply and reply.strip())
        except NarrativeServiceError as e:
            logger.error(f"LLM connection test failed: {e}")
            return False

    def __repr__(self):
        return f"<NarrativeClient(provider={self.provider.name}, attempts={self.max_attempts})>"


# ===== SINGLETON INSTANCE =====
_narrative_client = None


def get_narrative_client() -> NarrativeClient:
    """
    Get the global narrative client
    Lazy-loads on first call
    """
    global _narrative_client
    if _narrative_client is None:
        _narrative_client = NarrativeClient()
    return _narrative_client
