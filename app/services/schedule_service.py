"""
Employee schedule versions.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.models.schedule import EmployeeSchedule
from app.models.user import User
from app.schemas.schedule import ScheduleCreate
from app.utils.validators import DataValidator, ValidationError

logger = logging.getLogger(__name__)


class ScheduleService:
    """員工班表服務"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = DataValidator()

    def create_schedule(self, schedule_data: ScheduleCreate) -> EmployeeSchedule:
        """
        建立班表版本。

        新版本為啟用狀態時，同一員工先前啟用中的版本會被停用，並在新版本生效前一天結束。

        Raises:
            ValidationError: 如果資料驗證失敗
            ValueError: 員工不存在或建立失敗
        """
        data = schedule_data.dict()
        data["shift_type"] = schedule_data.shift_type.value
        data["work_days"] = [day.lower() for day in schedule_data.work_days]

        is_valid, errors = self.validator.validate_schedule_data(data)
        if not is_valid:
            raise ValidationError("; ".join(errors), "schedule")

        if not self.db.query(User).filter(User.id == schedule_data.user_id).first():
            raise ValueError("User not found")

        try:
            if data["is_active"]:
                self._deactivate_previous(schedule_data.user_id, schedule_data.effective_date)

            schedule = EmployeeSchedule(**data)
            self.db.add(schedule)
            self.db.commit()
            self.db.refresh(schedule)

            logger.info(f"Created schedule {schedule.id} for user {schedule.user_id} effective {schedule.effective_date}")
            return schedule

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create schedule: {str(e)}")
            raise ValueError("Failed to create schedule")

    def activate_schedule(self, schedule_id: int) -> EmployeeSchedule:
        """
        啟用班表版本並停用同一員工的其他版本。

        Raises:
            ValueError: 班表不存在或更新失敗
        """
        schedule = self.db.query(EmployeeSchedule).filter(EmployeeSchedule.id == schedule_id).first()
        if not schedule:
            raise ValueError("Schedule not found")

        try:
            self._deactivate_previous(schedule.user_id, schedule.effective_date, exclude_id=schedule.id)
            schedule.is_active = True
            self.db.commit()
            self.db.refresh(schedule)
            return schedule

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to activate schedule {schedule_id}: {str(e)}")
            raise ValueError("Failed to activate schedule")

    def _deactivate_previous(self, user_id: int, effective_date: date, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(EmployeeSchedule).filter(
            and_(EmployeeSchedule.user_id == user_id, EmployeeSchedule.is_active == True)
        )
        if exclude_id is not None:
            query = query.filter(EmployeeSchedule.id != exclude_id)

        for previous in query.all():
            previous.is_active = False
            if previous.effective_date < effective_date and (
                previous.end_date is None or previous.end_date >= effective_date
            ):
                previous.end_date = effective_date - timedelta(days=1)

    def list_schedules(self, user_id: int) -> List[EmployeeSchedule]:
        return self.db.query(EmployeeSchedule).filter(
            EmployeeSchedule.user_id == user_id
        ).order_by(EmployeeSchedule.effective_date.desc()).all()
