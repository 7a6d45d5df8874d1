# test_statistics.py
"""Test aggregation over detector output"""

from datetime import datetime

from logwarden.core.models import Anomaly
from logwarden.services.detector import AnomalyDetector
from logwarden.services.normalizer import normalize_csv
from logwarden.services.statistics import (
    anomaly_percentage, build_anomaly_details, compute_security_insights,
    compute_statistics, confidence_level, top_anomaly_types,
)


def test_compute_statistics():
    anomalies = [
        Anomaly(reason="High request rate from IP 1.1.1.1: 11 requests in 5 minutes", confidence=95),
        None,
        Anomaly(reason="Suspicious user agent detected", confidence=70),
        Anomaly(reason="High request rate from IP 2.2.2.2: 14 requests in 5 minutes", confidence=85),
    ]
    stats = compute_statistics(anomalies)

    assert stats.total_anomalies == 3
    assert stats.high_confidence_anomalies == 2
    assert stats.anomaly_types == {
        "High request rate from IP 1.1.1.1": 1,
        "Suspicious user agent detected": 1,
        "High request rate from IP 2.2.2.2": 1,
    }
    # (95 + 70 + 85) / 3 = 83.33
    assert stats.average_confidence == 83


def test_type_label_before_first_colon():
    anomalies = [
        Anomaly(reason="Suspicious application category: Malware", confidence=85),
        Anomaly(reason="Suspicious application category: Adware", confidence=85),
        Anomaly(reason="Critical threat score detected: 9", confidence=95),
    ]
    stats = compute_statistics(anomalies)
    assert stats.anomaly_types == {
        "Suspicious application category": 2,
        "Critical threat score detected": 1,
    }


def test_average_rounds_half_up():
    anomalies = [Anomaly(reason="a", confidence=85), Anomaly(reason="b", confidence=80)]
    assert compute_statistics(anomalies).average_confidence == 83


def test_empty_statistics():
    stats = compute_statistics([None, None])
    assert stats.total_anomalies == 0
    assert stats.high_confidence_anomalies == 0
    assert stats.anomaly_types == {}
    assert stats.average_confidence == 0

    assert compute_statistics([]).average_confidence == 0


def test_top_anomaly_types():
    anomalies = (
        [Anomaly(reason="A", confidence=70)] * 2
        + [Anomaly(reason="B", confidence=70)] * 3
        + [Anomaly(reason="C", confidence=70)] * 2
        + [Anomaly(reason=f"X{i}", confidence=70) for i in range(4)]
    )
    top = top_anomaly_types(compute_statistics(anomalies))

    assert [(t.type, t.count) for t in top] == [("B", 3), ("A", 2), ("C", 2), ("X0", 1), ("X1", 1)]
    assert len(top_anomaly_types(compute_statistics(anomalies), limit=2)) == 2


def test_anomaly_percentage():
    assert anomaly_percentage(1, 3) == 33.33
    assert anomaly_percentage(2, 4) == 50.0
    assert anomaly_percentage(0, 0) == 0.0


def test_confidence_level():
    assert confidence_level(95) == "High"
    assert confidence_level(85) == "High"
    assert confidence_level(84) == "Medium"
    assert confidence_level(70) == "Medium"
    assert confidence_level(69) == "Low"


def test_security_insights(sample_csv):
    records = normalize_csv(sample_csv)
    records.append({"srcip": "10.0.0.8", "threatseverity": "Critical", "app_risk_score": "90"})
    anomalies = AnomalyDetector().detect(records)
    insights = compute_security_insights(records, anomalies)

    assert insights.blocked_requests == 1
    assert insights.allowed_requests == 3
    assert insights.critical_threats == 1
    assert insights.high_risk_apps == 1
    # 10.0.0.5 (malware URL), 10.0.0.7 (threat score), 10.0.0.8 (severity)
    assert insights.suspicious_ips == 3


def test_suspicious_ips_are_distinct():
    records = [{"srcip": "1.1.1.1", "threatscore": "9"}] * 3 + [{"threatscore": "9"}]
    anomalies = AnomalyDetector().detect(records)
    assert compute_security_insights(records, anomalies).suspicious_ips == 1


def test_build_anomaly_details(sample_csv):
    records = normalize_csv(sample_csv)
    anomalies = AnomalyDetector().detect(records)
    details = build_anomaly_details(records, anomalies)

    assert len(details) == 2
    first = details[0]
    assert first.log_entry == records[0]
    assert first.anomaly_details.reason == "Blocked access to suspected malware URL"
    assert first.anomaly_details.confidence_level == "High"
    assert first.anomaly_details.source_ip == "10.0.0.5"
    assert first.anomaly_details.destination == "http://malware-download.exe"

    data = first.model_dump(by_alias=True)
    assert data["isAnomalous"] is True
    assert set(data["anomalyDetails"]) == {
        "reason", "confidenceScore", "confidenceLevel", "timestamp",
        "sourceIP", "destination", "action", "statusCode",
    }


def test_anomaly_detail_fallbacks():
    now = datetime(2025, 3, 1, 12, 0, 0)
    records = [
        {"threatscore": "9", "time": "10:00:00", "dstip": "8.8.8.8"},
        {"threatscore": "9"},
    ]
    anomalies = AnomalyDetector().detect(records)
    details = build_anomaly_details(records, anomalies, now=now)

    info = details[0].anomaly_details
    assert info.timestamp == "10:00:00"
    assert info.source_ip == "Unknown"
    assert info.destination == "8.8.8.8"
    assert info.action == "Unknown"
    assert info.status_code == "Unknown"

    assert details[1].anomaly_details.timestamp == now.isoformat()
    assert details[1].anomaly_details.destination == "Unknown"
