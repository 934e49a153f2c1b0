"""
Leave request approval and its effect on attendance and points.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.models.attendance import Attendance
from app.models.leave import LeaveRequest
from app.schemas.attendance import AttendanceStatus
from app.schemas.leave import LeaveCreate, LeaveStatus
from app.services.attendance_point_service import AttendancePointService
from app.utils.datetime_utils import utc_now
from app.utils.validators import ValidationError, validate_date_range, sanitize_input

logger = logging.getLogger(__name__)


class LeaveService:
    """請假服務"""

    def __init__(self, db: Session):
        self.db = db
        self.points = AttendancePointService(db)

    def create(self, leave_data: LeaveCreate) -> LeaveRequest:
        """
        建立請假申請。

        Raises:
            ValidationError: 如果日期範圍無效
            ValueError: 如果建立失敗
        """
        if not validate_date_range(leave_data.start_date, leave_data.end_date):
            raise ValidationError("Invalid leave date range", "start_date")

        try:
            leave = LeaveRequest(
                user_id=leave_data.user_id,
                start_date=leave_data.start_date,
                end_date=leave_data.end_date,
                leave_type=leave_data.leave_type.value,
                reason=sanitize_input(leave_data.reason) if leave_data.reason else None,
                has_supporting_document=leave_data.has_supporting_document,
                status=LeaveStatus.PENDING.value,
            )
            self.db.add(leave)
            self.db.commit()
            self.db.refresh(leave)
            return leave

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create leave request: {str(e)}")
            raise ValueError("Failed to create leave request")

    def approve(self, leave_id: int, actor_id: int) -> Dict:
        """
        核准請假。

        期間內未審核的 NCNS 出勤改為請假（並移除其點數）；有證明文件時，
        期間內其餘有效點數一併豁免。點數處理失敗不影響請假核准。

        Args:
            leave_id: 請假申請 ID
            actor_id: 核准者 ID

        Returns:
            {"leave": LeaveRequest, "attendances_updated": int, "points_excused": int}

        Raises:
            ValidationError: 缺少核准者
            ValueError: 申請不存在或狀態不允許核准
        """
        if not actor_id:
            raise ValidationError("Actor is required to approve leave", "actor_id")

        leave = self.db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()
        if not leave:
            raise ValueError("Leave request not found")
        if leave.status != LeaveStatus.PENDING.value:
            raise ValueError(f"Leave request is already {leave.status}")

        try:
            leave.status = LeaveStatus.APPROVED.value
            leave.approved_by = actor_id
            leave.approved_at = utc_now()

            attendances: List[Attendance] = self.db.query(Attendance).filter(
                and_(
                    Attendance.user_id == leave.user_id,
                    Attendance.shift_date >= leave.start_date,
                    Attendance.shift_date <= leave.end_date,
                    Attendance.status == AttendanceStatus.NCNS.value,
                    Attendance.admin_verified == False,
                )
            ).all()

            for attendance in attendances:
                attendance.status = AttendanceStatus.ON_LEAVE.value
                attendance.leave_request_id = leave.id
                self.db.flush()
                self.points.apply(attendance, recalculate=False)

            if attendances:
                self.points.cascade_recalculate(leave.user_id)

            self.db.commit()

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to approve leave request {leave_id}: {str(e)}")
            raise ValueError("Failed to approve leave request")

        excused = 0
        if leave.has_supporting_document:
            excused = self.points.excuse_for_leave(
                leave.user_id,
                leave.start_date,
                leave.end_date,
                reason=f"Approved {leave.leave_type} leave #{leave.id} with supporting document",
                actor_id=actor_id,
            )

        self.db.refresh(leave)
        logger.info(
            f"Leave {leave.id} approved by {actor_id}: {len(attendances)} attendances set on leave, {excused} points excused"
        )
        return {"leave": leave, "attendances_updated": len(attendances), "points_excused": excused}

    def get(self, leave_id: int) -> Optional[LeaveRequest]:
        return self.db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()
