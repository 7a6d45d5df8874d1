# logwarden/services/detector.py
"""
Rule-based anomaly detector for proxy log records

Every record is checked against a fixed list of rules. Each matching
rule produces a candidate Anomaly; the record keeps only the candidate
with the strictly highest confidence (first one wins on a tie).

Two rules are rate rules: they count records from the same source IP
whose timestamp lies in the trailing window [t - 5 min, t], both ends
inclusive. Instead of rescanning the whole file for every record, the
timestamps are bucketed per IP, sorted once and counted with bisect.
"""

import logging
import re
from bisect import bisect_left, bisect_right
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from dateutil import parser as date_parser

from ..core.models import Anomaly, AnomalySet, LogRecord
from ..core.rules import RuleConfig, DEFAULT_RULE_CONFIG

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Optional[str]) -> Optional[int]:
    """
    Read the leading integer of a field ("7", " 7", "7.9", "7kb" -> 7)

    Returns None for missing or non-numeric values so the rule is skipped.
    """
    if not value:
        return None
    match = _LEADING_INT.match(value)
    if not match:
        return None
    return int(match.group(1))


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a log timestamp

    Timezone-aware values are converted to naive UTC so they compare
    with naive ones. Returns None if the value can't be parsed.
    """
    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, TypeError):
        return None
    return parsed


class RateWindowIndex:
    """
    Per-IP sorted timestamps for the two rate rules

    count_requests() and count_forbidden() give the same numbers a full
    scan of the record list would, including the record itself.
    """

    def __init__(self, records: List[LogRecord], timestamps: List[Optional[datetime]], config: RuleConfig):
        self.window = config.rate_window
        self._all: Dict[str, List[datetime]] = defaultdict(list)
        self._forbidden: Dict[str, List[datetime]] = defaultdict(list)

        for record, ts in zip(records, timestamps):
            ip = record.get("srcip")
            if not ip or ts is None:
                continue
            self._all[ip].append(ts)
            if record.get("status_code") == config.forbidden_status:
                self._forbidden[ip].append(ts)

        for bucket in (self._all, self._forbidden):
            for times in bucket.values():
                times.sort()

    def _count(self, times: List[datetime], end: datetime) -> int:
        # Clamp at datetime.min, the subtraction overflows near year 1
        start = end - self.window if end - datetime.min >= self.window else datetime.min
        return bisect_right(times, end) - bisect_left(times, start)

    def count_requests(self, ip: str, end: datetime) -> int:
        return self._count(self._all.get(ip, []), end)

    def count_forbidden(self, ip: str, end: datetime) -> int:
        return self._count(self._forbidden.get(ip, []), end)


class AnomalyDetector:
    """
    Applies the rule set to a whole file of records

    Usage:
        >>> detector = AnomalyDetector()
        >>> anomalies = detector.detect(records)
        >>> anomalies[0]
        Anomaly(reason='Critical threat score detected: 5', confidence=95)

    The detector holds only its (immutable) config, so one instance can
    be shared between requests.
    """

    def __init__(self, config: RuleConfig = DEFAULT_RULE_CONFIG):
        self.config = config

        # Rule order matters: on equal confidence the earlier rule wins
        self._record_rules: List[Callable[[LogRecord], Optional[Anomaly]]] = [
            self._critical_threat_score,
            self._high_app_risk,
            self._blocked_phishing_url,
            self._blocked_malware_url,
            self._high_risk_domain,
            self._suspicious_user_agent,
            self._large_request,
        ]
        self._tail_rules: List[Callable[[LogRecord], Optional[Anomaly]]] = [
            self._blocked_security_risk,
            self._critical_severity,
            self._high_confidence_threat,
            self._suspicious_app_class,
        ]

    def detect(self, records: List[LogRecord]) -> AnomalySet:
        """
        Find the strongest anomaly for each record

        Args:
            records: Parsed log records, in file order

        Returns:
            List aligned with records: an Anomaly or None per record
        """
        return [self._strongest(matches) for matches in self.candidates(records)]

    def candidates(self, records: List[LogRecord]) -> List[List[Anomaly]]:
        """
        Every rule match for every record, in rule order

        detect() keeps only the strongest of these; the rest are what
        the single-anomaly reduction throws away.
        """
        timestamps = [parse_timestamp(r.get("timestamp")) for r in records]
        index = RateWindowIndex(records, timestamps, self.config)

        results = []
        for record, ts in zip(records, timestamps):
            matches = [a for a in (rule(record) for rule in self._record_rules) if a]
            matches.extend(self._rate_rules(record, ts, index))
            matches.extend(a for a in (rule(record) for rule in self._tail_rules) if a)
            results.append(matches)

        flagged = sum(1 for m in results if m)
        logger.debug(f"Rule scan: {flagged}/{len(records)} records matched at least one rule")
        return results

    @staticmethod
    def _strongest(matches: List[Anomaly]) -> Optional[Anomaly]:
        best = None
        for anomaly in matches:
            if best is None or anomaly.confidence > best.confidence:
                best = anomaly
        return best

    # ========================================
    # SINGLE-RECORD RULES
    # ========================================

    def _critical_threat_score(self, record: LogRecord) -> Optional[Anomaly]:
        score = parse_int(record.get("threatscore"))
        if score is not None and score >= self.config.critical_threat_score:
            return Anomaly(reason=f"Critical threat score detected: {record['threatscore']}", confidence=95)
        return None

    def _high_app_risk(self, record: LogRecord) -> Optional[Anomaly]:
        score = parse_int(record.get("app_risk_score"))
        if score is not None and score >= self.config.high_app_risk:
            return Anomaly(reason=f"High application risk score: {record['app_risk_score']}", confidence=85)
        return None

    def _blocked_url_matches(self, record: LogRecord, words) -> bool:
        url = record.get("url")
        if record.get("action") != self.config.blocked_action or not url:
            return False
        url = url.lower()
        return any(word in url for word in words)

    def _blocked_phishing_url(self, record: LogRecord) -> Optional[Anomaly]:
        if self._blocked_url_matches(record, self.config.phishing_words):
            return Anomaly(reason="Blocked access to suspected phishing URL", confidence=90)
        return None

    def _blocked_malware_url(self, record: LogRecord) -> Optional[Anomaly]:
        if self._blocked_url_matches(record, self.config.malware_words):
            return Anomaly(reason="Blocked access to suspected malware URL", confidence=92)
        return None

    def _high_risk_domain(self, record: LogRecord) -> Optional[Anomaly]:
        url = record.get("url")
        if url and any(domain in url for domain in self.config.high_risk_domains):
            return Anomaly(reason="Access to high-risk domain detected", confidence=75)
        return None

    def _suspicious_user_agent(self, record: LogRecord) -> Optional[Anomaly]:
        agent = record.get("user_agent")
        if agent and any(marker in agent.lower() for marker in self.config.suspicious_user_agents):
            return Anomaly(reason="Suspicious user agent detected", confidence=70)
        return None

    def _large_request(self, record: LogRecord) -> Optional[Anomaly]:
        size = parse_int(record.get("throttlereqsize"))
        if size is not None and size > self.config.large_request_size:
            return Anomaly(reason="Unusually large request size detected", confidence=65)
        return None

    def _blocked_security_risk(self, record: LogRecord) -> Optional[Anomaly]:
        if (record.get("action") == self.config.blocked_action
                and record.get("reason") == self.config.security_risk_reason):
            return Anomaly(reason="Security risk blocked by firewall", confidence=88)
        return None

    def _critical_severity(self, record: LogRecord) -> Optional[Anomaly]:
        if record.get("threatseverity") == self.config.critical_severity:
            return Anomaly(reason="Critical threat severity detected", confidence=95)
        return None

    def _high_confidence_threat(self, record: LogRecord) -> Optional[Anomaly]:
        score = parse_int(record.get("threatscore"))
        if (record.get("threatconfidence") == self.config.high_confidence
                and score is not None and score > 0):
            return Anomaly(reason="High confidence threat detected", confidence=90)
        return None

    def _suspicious_app_class(self, record: LogRecord) -> Optional[Anomaly]:
        app_class = record.get("appclass")
        if app_class and app_class in self.config.suspicious_app_classes:
            return Anomaly(reason=f"Suspicious application category: {app_class}", confidence=85)
        return None

    # ========================================
    # RATE RULES
    # ========================================

    def _rate_rules(self, record: LogRecord, ts: Optional[datetime], index: RateWindowIndex) -> List[Anomaly]:
        ip = record.get("srcip")
        if not ip or ts is None:
            return []

        found = []
        requests = index.count_requests(ip, ts)
        if requests > self.config.rapid_requests:
            found.append(Anomaly(
                reason=f"High request rate from IP {ip}: {requests} requests in 5 minutes",
                confidence=80,
            ))

        # Only a 403 line itself is flagged for a burst of 403s
        if record.get("status_code") == self.config.forbidden_status:
            forbidden = index.count_forbidden(ip, ts)
            if forbidden > self.config.forbidden_requests:
                found.append(Anomaly(
                    reason=f"Multiple forbidden requests from IP {ip}: {forbidden} 403 errors in 5 minutes",
                    confidence=85,
                ))

        return found


# ===== SINGLETON INSTANCE =====
_detector = None


def get_detector() -> AnomalyDetector:
    """Get the shared detector built from the default rule config"""
    global _detector
    if _detector is None:
        _detector = AnomalyDetector()
    return _detector
