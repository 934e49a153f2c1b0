from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import date
from enum import Enum

from app.schemas.scan import ScanEvent


class AnomalyType(str, Enum):
    SIMULTANEOUS_SITES = "simultaneous_sites"
    DUPLICATE_SCANS = "duplicate_scans"
    UNUSUAL_HOURS = "unusual_hours"
    EXCESSIVE_SCANS = "excessive_scans"
    IMPOSSIBLE_GAPS = "impossible_gaps"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnomalyUser(BaseModel):
    employee_key: str
    name: str
    user_id: Optional[int] = None


class Anomaly(BaseModel):
    type: AnomalyType
    severity: Severity
    description: str
    user: AnomalyUser
    records: List[ScanEvent] = []
    details: Dict[str, Any] = {}


class AnomalyStatistics(BaseModel):
    total: int = 0
    by_type: Dict[str, int] = {}
    by_severity: Dict[str, int] = {}


class AnomalyReport(BaseModel):
    start_date: date
    end_date: date
    anomalies: Dict[str, List[Anomaly]]
    statistics: AnomalyStatistics
