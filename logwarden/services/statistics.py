# logwarden/services/statistics.py
"""
Aggregation over detector output

Turns an AnomalySet (plus the records it was computed from) into the
numbers shown on the dashboard and stored with each analysis.
"""

import math
from collections import Counter
from datetime import datetime
from typing import List, Optional

from ..core.models import (
    AnomalySet, AnomalyStatistics, AnomalyTypeCount, SecurityInsights,
    AnomalyDetail, AnomalyInfo, LogRecord,
)
from ..core.rules import RuleConfig, DEFAULT_RULE_CONFIG
from .detector import parse_int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_statistics(anomalies: AnomalySet, config: RuleConfig = DEFAULT_RULE_CONFIG) -> AnomalyStatistics:
    """
    Summarize an AnomalySet

    - total_anomalies: entries that are not None
    - high_confidence_anomalies: confidence >= 85
    - anomaly_types: reason text before the first colon -> count
    - average_confidence: rounded mean, 0 when there are no anomalies
    """
    found = [a for a in anomalies if a is not None]
    if not found:
        return AnomalyStatistics()

    types = Counter(a.type_label for a in found)
    total_confidence = sum(a.confidence for a in found)

    return AnomalyStatistics(
        total_anomalies=len(found),
        high_confidence_anomalies=sum(1 for a in found if a.confidence >= config.high_confidence_threshold),
        anomaly_types=dict(types),
        average_confidence=_round_half_up(total_confidence / len(found)),
    )


def top_anomaly_types(stats: AnomalyStatistics, limit: int = 5) -> List[AnomalyTypeCount]:
    """Most frequent anomaly types, highest count first"""
    ranked = sorted(stats.anomaly_types.items(), key=lambda item: item[1], reverse=True)
    return [AnomalyTypeCount(type=label, count=count) for label, count in ranked[:limit]]


def anomaly_percentage(anomaly_count: int, total: int) -> float:
    """Share of anomalous lines, as a percentage with 2 decimals"""
    if total <= 0:
        return 0.0
    return round(anomaly_count / total * 100, 2)


def compute_security_insights(
    records: List[LogRecord],
    anomalies: AnomalySet,
    config: RuleConfig = DEFAULT_RULE_CONFIG
) -> SecurityInsights:
    """Counters over the raw records plus distinct IPs behind anomalies"""
    blocked = allowed = critical = high_risk = 0
    suspicious_ips = set()

    for record, anomaly in zip(records, anomalies):
        action = record.get("action")
        if action == config.blocked_action:
            blocked += 1
        elif action == config.allowed_action:
            allowed += 1

        if record.get("threatseverity") == config.critical_severity:
            critical += 1

        risk = parse_int(record.get("app_risk_score"))
        if risk is not None and risk >= config.high_app_risk:
            high_risk += 1

        if anomaly is not None and record.get("srcip"):
            suspicious_ips.add(record["srcip"])

    return SecurityInsights(
        blocked_requests=blocked,
        allowed_requests=allowed,
        critical_threats=critical,
        high_risk_apps=high_risk,
        suspicious_ips=len(suspicious_ips),
    )


def confidence_level(score: int, config: RuleConfig = DEFAULT_RULE_CONFIG) -> str:
    if score >= config.high_confidence_threshold:
        return "High"
    if score >= config.medium_confidence_threshold:
        return "Medium"
    return "Low"


def build_anomaly_details(
    records: List[LogRecord],
    anomalies: AnomalySet,
    now: Optional[datetime] = None
) -> List[AnomalyDetail]:
    """
    Join each anomaly back to the line it came from

    Only anomalous lines are returned, in file order.
    """
    now = now or datetime.now()
    details = []

    for record, anomaly in zip(records, anomalies):
        if anomaly is None:
            continue

        details.append(AnomalyDetail(
            log_entry=dict(record),
            anomaly_details=AnomalyInfo(
                reason=anomaly.reason,
                confidence_score=anomaly.confidence,
                confidence_level=confidence_level(anomaly.confidence),
                timestamp=record.get("timestamp") or record.get("time") or now.isoformat(),
                source_ip=record.get("srcip") or "Unknown",
                destination=record.get("url") or record.get("dstip") or "Unknown",
                action=record.get("action") or "Unknown",
                status_code=record.get("status_code") or "Unknown",
            ),
        ))

    return details
