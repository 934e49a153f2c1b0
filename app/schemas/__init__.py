from .scan import ScanEvent, ParseResult
from .schedule import ShiftType, ScheduleVersion, ScheduleCreate, ScheduleResponse
from .shift import ShiftInstance, ClassificationResult
from .attendance import AttendanceStatus, AttendanceResponse, AttendanceVerifyRequest, UploadSummary
from .point import PointType, ExpirationType, AttendancePointResponse, ExcuseRequest
from .anomaly import AnomalyType, Severity, Anomaly, AnomalyReport
from .reprocess import ReprocessRequest, ReprocessResult, JobProgress
from .leave import LeaveBase, LeaveCreate, LeaveResponse, LeaveApproveRequest

__all__ = [
    "ScanEvent", "ParseResult",
    "ShiftType", "ScheduleVersion", "ScheduleCreate", "ScheduleResponse",
    "ShiftInstance", "ClassificationResult",
    "AttendanceStatus", "AttendanceResponse", "AttendanceVerifyRequest", "UploadSummary",
    "PointType", "ExpirationType", "AttendancePointResponse", "ExcuseRequest",
    "AnomalyType", "Severity", "Anomaly", "AnomalyReport",
    "ReprocessRequest", "ReprocessResult", "JobProgress",
    "LeaveBase", "LeaveCreate", "LeaveResponse", "LeaveApproveRequest",
]
