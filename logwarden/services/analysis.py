# logwarden/services/analysis.py
"""
Analysis orchestrator
Ties the pipeline together for one uploaded file:

    read -> normalize -> detect -> aggregate -> narrative -> persist

The narrative is the only network call. If it fails, a fixed fallback
narrative is stored instead and the rule-based results are still saved.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.database import Database, db as default_db
from ..core.models import (
    AnalysisSummary, AnomalySet, AnomalyStatistics, AnomalyStatisticsSummary, FileInfo,
    FileNarrative, LogFile, LogRecord,
)
from ..core.rules import RuleConfig, DEFAULT_RULE_CONFIG
from .detector import AnomalyDetector, get_detector
from .llm import NarrativeClient, fallback_narrative, get_narrative_client
from .normalizer import normalize_csv, read_log_file
from .statistics import (
    anomaly_percentage, build_anomaly_details, compute_security_insights,
    compute_statistics, top_anomaly_types,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """What the analyze endpoint reports back"""
    analysis_id: int
    total_analyzed: int
    total_anomalies: int
    message: str


class AnalysisService:
    """
    Runs the full analysis of a stored log file

    Usage:
        >>> service = AnalysisService()
        >>> outcome = await service.analyze(log_file)
        >>> outcome.total_anomalies
        3
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        narrative_client: Optional[NarrativeClient] = None,
        detector: Optional[AnomalyDetector] = None,
        config: RuleConfig = DEFAULT_RULE_CONFIG
    ):
        self.db = database or default_db
        self._narrative_client = narrative_client
        self.detector = detector or get_detector()
        self.config = config

    @property
    def narrative_client(self) -> NarrativeClient:
        # Built lazily so reports never need a configured provider
        if self._narrative_client is None:
            self._narrative_client = get_narrative_client()
        return self._narrative_client

    def load_records(self, log_file: LogFile) -> List[LogRecord]:
        """
        Read and parse the stored upload

        Raises:
            InputError: If the file is missing, unreadable or empty
        """
        return normalize_csv(read_log_file(log_file.file_path))

    async def analyze(self, log_file: LogFile) -> AnalysisOutcome:
        """
        Analyze a log file and store the result

        Raises:
            InputError: If the file can't be turned into records
            PersistenceError: If the result can't be saved
        """
        logger.info(f"Analyzing log {log_file.id} ({log_file.original_filename})")

        records = await asyncio.to_thread(self.load_records, log_file)
        logger.info(f"Parsed {len(records)} log entries")

        anomalies = self.detector.detect(records)
        stats = compute_statistics(anomalies, self.config)
        percentage = anomaly_percentage(stats.total_anomalies, len(records))
        logger.info(f"Detected {stats.total_anomalies} anomalies ({percentage}%)")

        narrative = await self._generate_narrative(log_file, records, anomalies, stats, percentage)

        summary = AnalysisSummary(
            total_analyzed=len(records),
            total_anomalies=stats.total_anomalies,
            anomaly_percentage=percentage,
            file_info=FileInfo(
                original_filename=log_file.original_filename,
                upload_date=log_file.upload_date,
            ),
            anomaly_statistics=AnomalyStatisticsSummary(
                high_confidence_anomalies=stats.high_confidence_anomalies,
                average_confidence=stats.average_confidence,
                anomaly_types=stats.anomaly_types,
                top_anomaly_types=top_anomaly_types(stats),
            ),
            security_insights=compute_security_insights(records, anomalies, self.config),
            ai_analysis=narrative.model_dump(by_alias=True),
        )
        summary_data = summary.model_dump(mode="json")

        analysis_id = await asyncio.to_thread(
            self._save, log_file, len(records), stats.total_anomalies, summary_data
        )
        logger.info(f"Saved analysis {analysis_id} for log {log_file.id}")

        return AnalysisOutcome(
            analysis_id=analysis_id,
            total_analyzed=len(records),
            total_anomalies=stats.total_anomalies,
            message=(
                f"Analysis completed successfully. Found {stats.total_anomalies} "
                f"anomalies in {len(records)} log entries."
            ),
        )

    def _save(
        self,
        log_file: LogFile,
        total_analyzed: int,
        total_anomalies: int,
        summary_data: Dict[str, Any]
    ) -> int:
        analysis_id = self.db.upsert_analysis(
            log_file.id,
            total_analyzed=total_analyzed,
            total_anomalies=total_anomalies,
            analysis_summary=summary_data,
        )
        self.db.set_log_analysis_result(log_file.id, summary_data)
        return analysis_id

    async def _generate_narrative(
        self,
        log_file: LogFile,
        records: List[LogRecord],
        anomalies: AnomalySet,
        stats: AnomalyStatistics,
        percentage: float
    ) -> FileNarrative:
        """One narrative call per file; any failure gives the fallback"""
        found = [a for a in anomalies if a is not None]

        try:
            return await self.narrative_client.analyze_file(
                log_file.original_filename, records, found, stats, percentage
            )
        except Exception as e:
            logger.warning(f"Narrative generation failed, using fallback: {e}")
            return fallback_narrative()

    def anomaly_report(self, log_file: LogFile) -> Dict[str, Any]:
        """
        Per-line anomaly view of a log file

        Re-parses and re-detects from the stored file every time; the
        narrative client is never called.

        Raises:
            InputError: If the file can't be turned into records
        """
        records = self.load_records(log_file)
        anomalies = self.detector.detect(records)
        stats = compute_statistics(anomalies, self.config)
        details = build_anomaly_details(records, anomalies)

        return {
            "status": "success",
            "totalEntries": len(records),
            "anomalousEntries": len(details),
            "averageConfidence": stats.average_confidence,
            "highConfidenceAnomalies": stats.high_confidence_anomalies,
            "anomalyDetails": [d.model_dump(by_alias=True) for d in details],
            "summary": {
                "totalAnalyzed": len(records),
                "totalAnomalies": len(details),
                "anomalyPercentage": anomaly_percentage(len(details), len(records)),
                "averageConfidence": stats.average_confidence,
                "anomalyTypes": stats.anomaly_types,
            },
        }


# ===== SINGLETON INSTANCE =====
_analysis_service = None


def get_analysis_service() -> AnalysisService:
    """Get the global analysis service (FastAPI dependency)"""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
