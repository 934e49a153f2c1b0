from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import date, datetime
from enum import Enum


class AttendanceStatus(str, Enum):
    ON_TIME = "on_time"
    TARDY = "tardy"
    HALF_DAY_ABSENCE = "half_day_absence"
    ADVISED_ABSENCE = "advised_absence"
    NCNS = "ncns"
    UNDERTIME = "undertime"
    UNDERTIME_MORE_THAN_HOUR = "undertime_more_than_hour"
    FAILED_BIO_IN = "failed_bio_in"
    FAILED_BIO_OUT = "failed_bio_out"
    PRESENT_NO_BIO = "present_no_bio"
    NEEDS_MANUAL_REVIEW = "needs_manual_review"
    NON_WORK_DAY = "non_work_day"
    ON_LEAVE = "on_leave"


class AttendanceResponse(BaseModel):
    id: int
    user_id: int
    employee_schedule_id: Optional[int] = None
    shift_date: date
    scheduled_time_in: Optional[datetime] = None
    scheduled_time_out: Optional[datetime] = None
    actual_time_in: Optional[datetime] = None
    actual_time_out: Optional[datetime] = None
    bio_in_site_id: Optional[int] = None
    bio_out_site_id: Optional[int] = None
    status: str
    secondary_status: Optional[str] = None
    tardy_minutes: Optional[int] = None
    undertime_minutes: Optional[int] = None
    overtime_minutes: Optional[int] = None
    total_minutes_worked: Optional[int] = None
    overtime_approved: bool = False
    is_cross_site_bio: bool = False
    admin_verified: bool = False
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    warnings: List[str] = []
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class AttendanceListResponse(BaseModel):
    records: List[AttendanceResponse]
    total: int
    skip: int
    limit: int


class AttendanceVerifyRequest(BaseModel):
    """人工審核請求"""
    actor_id: int
    status: Optional[AttendanceStatus] = None
    secondary_status: Optional[AttendanceStatus] = None
    overtime_approved: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=1000)


class FixStatusesRequest(BaseModel):
    start_date: date
    end_date: date
    user_ids: Optional[List[int]] = None


class FixStatusesResult(BaseModel):
    updated: int = 0
    unchanged: int = 0
    skipped_verified: int = 0
    skipped_no_schedule: int = 0


class UploadSummary(BaseModel):
    """上傳處理摘要"""
    upload_id: int
    status: str
    total_lines: int = 0
    malformed_lines: int = 0
    total_records: int = 0
    stored_records: int = 0
    matched_employees: int = 0
    unmatched_names: List[str] = []
    processed: int = 0
    failed: int = 0
    errors: List[Dict] = []
    message: str = ""
