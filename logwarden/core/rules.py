# logwarden/core/rules.py
"""
Keyword lists and thresholds for the anomaly rules

Kept as one immutable object so a detector can be built with a
different set (e.g. in tests) without touching module globals.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Tuple


PHISHING_WORDS: Tuple[str, ...] = (
    "phish", "malware", "suspicious", "attack", "exploit", "steal", "fake",
    "login", "bank", "paypal", "credit", "card", "password", "verify", "secure",
    "update", "confirm", "account", "suspended", "blocked",
)

MALWARE_WORDS: Tuple[str, ...] = (
    "malware", "virus", "trojan", "worm", "spyware", "adware", "ransomware",
    "botnet", "backdoor", "rootkit", "keylogger", "download", "exe", "dll",
    "suspicious", "malicious", "infected", "compromised",
)

HIGH_RISK_DOMAINS: Tuple[str, ...] = (
    ".tk", ".ml", ".ga", ".cf", ".gq", ".xyz", ".top", ".club", ".online",
)

SUSPICIOUS_USER_AGENTS: Tuple[str, ...] = ("curl", "wget", "python", "bot", "crawler")

SUSPICIOUS_APP_CLASSES: Tuple[str, ...] = ("Malware", "Phishing", "Adware", "Unknown")


@dataclass(frozen=True)
class RuleConfig:
    """
    Thresholds and keyword sets used by AnomalyDetector

    Comparisons:
        threatscore >= critical_threat_score
        app_risk_score >= high_app_risk
        throttlereqsize > large_request_size
        requests in window > rapid_requests
        403s in window > forbidden_requests
    """
    critical_threat_score: int = 5
    high_app_risk: int = 80
    large_request_size: int = 50000  # bytes
    rapid_requests: int = 10
    forbidden_requests: int = 5
    rate_window: timedelta = timedelta(minutes=5)

    phishing_words: Tuple[str, ...] = PHISHING_WORDS
    malware_words: Tuple[str, ...] = MALWARE_WORDS
    high_risk_domains: Tuple[str, ...] = HIGH_RISK_DOMAINS
    suspicious_user_agents: Tuple[str, ...] = SUSPICIOUS_USER_AGENTS
    suspicious_app_classes: Tuple[str, ...] = SUSPICIOUS_APP_CLASSES

    blocked_action: str = "Blocked"
    allowed_action: str = "Allowed"
    security_risk_reason: str = "Security Risk"
    critical_severity: str = "Critical"
    high_confidence: str = "High"
    forbidden_status: str = "403"

    # Confidence at or above this counts as "high confidence"
    high_confidence_threshold: int = 85
    medium_confidence_threshold: int = 70


DEFAULT_RULE_CONFIG = RuleConfig()
