from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime, time
from enum import Enum

from app.config import settings


class ShiftType(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"
    GRAVEYARD = "graveyard"
    UTILITY_24H = "utility_24h"


class ScheduleVersion(BaseModel):
    """某一段期間生效的員工班表"""
    id: Optional[int] = None
    user_id: int
    campaign_id: Optional[int] = None
    site_id: Optional[int] = None
    shift_type: ShiftType
    scheduled_time_in: time
    scheduled_time_out: time
    work_days: List[str] = []
    grace_period_minutes: int = 15
    effective_date: date
    end_date: Optional[date] = None
    is_active: bool = True

    class Config:
        from_attributes = True

    def covers(self, target: date) -> bool:
        if target < self.effective_date:
            return False
        if self.end_date and target > self.end_date:
            return False
        return True

    def works_on_day(self, day_name: str) -> bool:
        return day_name.lower() in [day.lower() for day in self.work_days]

    @property
    def crosses_midnight(self) -> bool:
        return self.scheduled_time_out <= self.scheduled_time_in


class ScheduleCreate(BaseModel):
    user_id: int
    campaign_id: Optional[int] = None
    site_id: Optional[int] = None
    shift_type: ShiftType
    scheduled_time_in: time
    scheduled_time_out: time
    work_days: List[str] = Field(..., min_length=1)
    grace_period_minutes: int = Field(settings.DEFAULT_GRACE_PERIOD_MINUTES, ge=0, le=120)
    effective_date: date
    end_date: Optional[date] = None
    is_active: bool = True


class ScheduleResponse(ScheduleCreate):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
