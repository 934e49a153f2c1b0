from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from enum import Enum

class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"

class LeaveType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    EMERGENCY = "emergency"
    BEREAVEMENT = "bereavement"
    MATERNITY = "maternity"
    PATERNITY = "paternity"

class LeaveBase(BaseModel):
    user_id: int
    start_date: date
    end_date: date
    leave_type: LeaveType = LeaveType.VACATION
    reason: Optional[str] = None
    has_supporting_document: bool = False

class LeaveCreate(LeaveBase):
    pass

class LeaveApproveRequest(BaseModel):
    actor_id: int

class LeaveResponse(LeaveBase):
    id: int
    status: LeaveStatus
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class LeaveApprovalResult(BaseModel):
    leave: LeaveResponse
    attendances_updated: int = 0
    points_excused: int = 0
