from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class PointType(str, Enum):
    WHOLE_DAY_ABSENCE = "whole_day_absence"
    HALF_DAY_ABSENCE = "half_day_absence"
    TARDY = "tardy"
    UNDERTIME = "undertime"
    UNDERTIME_MORE_THAN_HOUR = "undertime_more_than_hour"


class ExpirationType(str, Enum):
    SRO = "sro"
    GBRO = "gbro"
    NONE = "none"


class AttendancePointResponse(BaseModel):
    id: int
    user_id: int
    attendance_id: Optional[int] = None
    shift_date: date
    point_type: str
    status: Optional[str] = None
    points: Decimal
    is_advised: bool = False
    violation_details: Optional[str] = None
    is_excused: bool = False
    excused_by: Optional[int] = None
    excused_at: Optional[datetime] = None
    excuse_reason: Optional[str] = None
    is_expired: bool = False
    expired_at: Optional[date] = None
    expires_at: Optional[date] = None
    expiration_type: Optional[str] = None
    gbro_applied_at: Optional[date] = None
    gbro_expires_at: Optional[date] = None
    eligible_for_gbro: bool = True

    class Config:
        from_attributes = True


class PointListResponse(BaseModel):
    points: List[AttendancePointResponse]
    total: int
    active_total: Decimal


class ExcuseRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    actor_id: int


class ExpireRequest(BaseModel):
    as_of: Optional[date] = None
