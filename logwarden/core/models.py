# logwarden/core/models.py
"""
Core data models for LogWarden
These are the building blocks that flow through the entire system
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# One parsed CSV line: field name -> raw string value.
# Well-known keys are read by name, anything else passes through.
LogRecord = Dict[str, str]


class CamelModel(BaseModel):
    """Base for models whose wire format uses camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================
# DETECTION
# ========================================

class Anomaly(BaseModel):
    """
    A rule match for a single log record
    A record carries at most one of these (the highest-confidence match)
    """
    model_config = ConfigDict(frozen=True)

    reason: str
    confidence: int = Field(..., ge=0, le=100)

    @property
    def type_label(self) -> str:
        """Coarse grouping key: the reason text before its first colon"""
        return self.reason.split(":", 1)[0]


# Aligned one-to-one with the input record list
AnomalySet = List[Optional[Anomaly]]


class AnomalyStatistics(BaseModel):
    """Summary numbers over an AnomalySet"""
    total_anomalies: int = 0
    high_confidence_anomalies: int = 0
    anomaly_types: Dict[str, int] = Field(default_factory=dict)
    average_confidence: int = 0


class AnomalyTypeCount(BaseModel):
    type: str
    count: int


class SecurityInsights(BaseModel):
    """Counters over the raw records, independent of rule matches"""
    blocked_requests: int = 0
    allowed_requests: int = 0
    critical_threats: int = 0
    high_risk_apps: int = 0
    suspicious_ips: int = 0


class FileNarrative(CamelModel):
    """
    Human-readable security narrative for a whole file
    Serialized as summary / keyFindings / recommendedActions / riskLevel / aiConfidenceScore
    """
    summary: str
    key_findings: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    risk_level: str = "Medium"
    ai_confidence_score: float = 0

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "summary": "Several blocked malware downloads from one subnet.",
                "keyFindings": ["12 requests to .tk domains"],
                "recommendedActions": ["Isolate 10.0.0.12"],
                "riskLevel": "High",
                "aiConfidenceScore": 85
            }
        }
    )


# ========================================
# PERSISTED SUMMARY
# ========================================

class FileInfo(BaseModel):
    original_filename: str
    upload_date: Optional[datetime] = None


class AnomalyStatisticsSummary(BaseModel):
    high_confidence_anomalies: int = 0
    average_confidence: int = 0
    anomaly_types: Dict[str, int] = Field(default_factory=dict)
    top_anomaly_types: List[AnomalyTypeCount] = Field(default_factory=list)


class AnalysisSummary(BaseModel):
    """
    Everything stored for one analysed file
    Written to log_analysis_results.analysis_summary as JSON
    """
    total_analyzed: int
    total_anomalies: int
    anomaly_percentage: float
    analysis_timestamp: datetime = Field(default_factory=datetime.now)
    file_info: FileInfo
    anomaly_statistics: AnomalyStatisticsSummary
    security_insights: SecurityInsights
    ai_analysis: Dict[str, Any]


# ========================================
# ANOMALY DETAIL VIEW
# ========================================

class AnomalyInfo(CamelModel):
    reason: str
    confidence_score: int
    confidence_level: str  # High / Medium / Low
    timestamp: str
    source_ip: str = Field(..., alias="sourceIP")
    destination: str
    action: str
    status_code: str


class AnomalyDetail(CamelModel):
    """One anomalous line joined back to its source record"""
    log_entry: Dict[str, Any]
    is_anomalous: bool = True
    anomaly_details: AnomalyInfo


# ========================================
# USERS & FILES
# ========================================

class User(BaseModel):
    id: int
    email: str
    password_hash: str
    role: str = "user"
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    last_login: Optional[datetime] = None

    def public_dict(self) -> Dict[str, Any]:
        """User data safe to send to clients (no password hash)"""
        return self.model_dump(mode="json", exclude={"password_hash"})


class LogFile(BaseModel):
    """
    An uploaded log file
    The bytes live on disk at file_path; this is the metadata row
    """
    id: int
    user_id: int
    filename: str  # Stored name under upload_dir
    original_filename: str
    file_path: str
    upload_date: datetime
    analysis_result: Optional[Dict[str, Any]] = None


class LogFileListing(BaseModel):
    """A LogFile row left-joined with its analysis totals"""
    id: int
    original_filename: str
    upload_date: datetime
    analysis_result: Optional[Dict[str, Any]] = None
    total_analyzed: Optional[int] = None
    total_anomalies: Optional[int] = None
    analysis_status: Optional[str] = None
    analysis_date: Optional[datetime] = None


class AnalysisRecord(BaseModel):
    """A row of log_analysis_results"""
    id: int
    log_id: int
    total_analyzed: int = 0
    total_anomalies: int = 0
    analysis_status: str = "pending"
    analysis_summary: Optional[Dict[str, Any]] = None
    analysis_date: datetime
    created_at: datetime
    updated_at: datetime
    original_filename: Optional[str] = None
    upload_date: Optional[datetime] = None
