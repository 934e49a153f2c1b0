from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime

from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion


class ShiftInstance(BaseModel):
    """一個參考日期的預定班次與配對到的打卡"""
    employee_key: str
    user_id: Optional[int] = None
    reference_date: date
    schedule: Optional[ScheduleVersion] = None
    scheduled_time_in: Optional[datetime] = None
    scheduled_time_out: Optional[datetime] = None
    is_work_day: bool = True
    matched_scan_in: Optional[ScanEvent] = None
    matched_scan_out: Optional[ScanEvent] = None
    scans: List[ScanEvent] = []
    warnings: List[str] = []
    leave_request_id: Optional[int] = None


class ClassificationResult(BaseModel):
    """班次判定結果，對應 Attendance 欄位"""
    status: str
    secondary_status: Optional[str] = None
    tardy_minutes: Optional[int] = None
    undertime_minutes: Optional[int] = None
    overtime_minutes: Optional[int] = None
    total_minutes_worked: Optional[int] = None
    actual_time_in: Optional[datetime] = None
    actual_time_out: Optional[datetime] = None
    bio_in_site_id: Optional[int] = None
    bio_out_site_id: Optional[int] = None
    is_cross_site_bio: bool = False
    warnings: List[str] = []
