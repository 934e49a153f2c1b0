"""
Attendance point accrual, excusal, expiry and GBRO recalculation.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.config import settings
from app.models.attendance import Attendance
from app.models.attendance_point import AttendancePoint
from app.schemas.attendance import AttendanceStatus
from app.schemas.point import ExpirationType, PointType
from app.services.gbro import PointSnapshot, replay_gbro, projected_gbro_dates
from app.utils.datetime_utils import add_months, format_time, get_today, utc_now
from app.utils.validators import ValidationError, sanitize_input

logger = logging.getLogger(__name__)

POINT_VALUES: Dict[str, Decimal] = {
    PointType.WHOLE_DAY_ABSENCE.value: Decimal("1.00"),
    PointType.HALF_DAY_ABSENCE.value: Decimal("0.50"),
    PointType.UNDERTIME.value: Decimal("0.25"),
    PointType.UNDERTIME_MORE_THAN_HOUR.value: Decimal("0.50"),
    PointType.TARDY.value: Decimal("0.25"),
}

STATUS_POINT_TYPES: Dict[str, str] = {
    AttendanceStatus.NCNS.value: PointType.WHOLE_DAY_ABSENCE.value,
    AttendanceStatus.ADVISED_ABSENCE.value: PointType.WHOLE_DAY_ABSENCE.value,
    AttendanceStatus.HALF_DAY_ABSENCE.value: PointType.HALF_DAY_ABSENCE.value,
    AttendanceStatus.TARDY.value: PointType.TARDY.value,
    AttendanceStatus.UNDERTIME.value: PointType.UNDERTIME.value,
    AttendanceStatus.UNDERTIME_MORE_THAN_HOUR.value: PointType.UNDERTIME_MORE_THAN_HOUR.value,
}

# 整天缺勤不再另計早退
_NO_UNDERTIME_STATUSES = {
    AttendanceStatus.NCNS.value,
    AttendanceStatus.ADVISED_ABSENCE.value,
    AttendanceStatus.ON_LEAVE.value,
    AttendanceStatus.NON_WORK_DAY.value,
}


class Violation(NamedTuple):
    point_type: str
    status: str
    points: Decimal
    is_advised: bool


def determine_violation(attendance: Attendance) -> Optional[Violation]:
    """
    由出勤紀錄目前的狀態推導應記的點數。

    主要狀態、次要狀態與早退分鐘數各自可能構成違規，只取點數最高的一項。
    """
    candidates: List[Violation] = []

    for status in (attendance.status, attendance.secondary_status):
        point_type = STATUS_POINT_TYPES.get(status)
        if point_type:
            candidates.append(Violation(
                point_type, status, POINT_VALUES[point_type],
                status == AttendanceStatus.ADVISED_ABSENCE.value,
            ))

    if attendance.undertime_minutes and attendance.status not in _NO_UNDERTIME_STATUSES:
        if attendance.undertime_minutes > settings.UNDERTIME_MORE_THAN_HOUR_MINUTES:
            point_type = PointType.UNDERTIME_MORE_THAN_HOUR.value
        else:
            point_type = PointType.UNDERTIME.value
        candidates.append(Violation(point_type, point_type, POINT_VALUES[point_type], False))

    if not candidates:
        return None
    # 點數相同時保留先出現的（主要狀態優先）
    return max(candidates, key=lambda violation: violation.points)


def violation_signature(attendance: Attendance) -> tuple:
    """點數只依這些欄位決定，欄位不變時不需要重建點數"""
    return (
        attendance.status,
        attendance.secondary_status,
        attendance.tardy_minutes,
        attendance.undertime_minutes,
    )


class AttendancePointService:
    """出勤違規點數服務"""

    def __init__(self, db: Session):
        self.db = db

    def apply(self, attendance: Attendance, recalculate: bool = True) -> Optional[AttendancePoint]:
        """
        依出勤紀錄重建點數。

        同一員工同一班次日期的既有點數一律刪除後重新建立，不會就地修改。
        點數是衍生資料，建立失敗只記錄錯誤，不影響出勤紀錄本身的交易。

        Args:
            attendance: 出勤紀錄（已 flush，具有 id）
            recalculate: 是否在建立後重新計算 GBRO

        Returns:
            新建立的點數；不需記點或建立失敗時回傳 None
        """
        try:
            with self.db.begin_nested():
                self.db.query(AttendancePoint).filter(
                    and_(
                        AttendancePoint.user_id == attendance.user_id,
                        AttendancePoint.shift_date == attendance.shift_date,
                    )
                ).delete(synchronize_session="fetch")

                violation = determine_violation(attendance)
                point = None
                if violation is not None:
                    point = self._build_point(attendance, violation)
                    self.db.add(point)
                    self.db.flush()
                    logger.info(
                        f"Created {violation.point_type} point ({violation.points}) for user {attendance.user_id} "
                        f"on {attendance.shift_date}"
                    )

                if recalculate:
                    self.cascade_recalculate(attendance.user_id)

            return point

        except Exception as e:
            logger.error(
                f"Failed to regenerate points for user {attendance.user_id} on {attendance.shift_date}: {str(e)}"
            )
            return None

    def remove_for_shift(self, user_id: int, shift_date: date) -> int:
        """刪除某員工某班次日期的點數（出勤紀錄被移除時使用），不重新計算 GBRO"""
        removed = self.db.query(AttendancePoint).filter(
            and_(
                AttendancePoint.user_id == user_id,
                AttendancePoint.shift_date == shift_date,
            )
        ).delete(synchronize_session="fetch")
        if removed:
            logger.info(f"Removed {removed} point(s) for user {user_id} on {shift_date}")
        return removed

    def _build_point(self, attendance: Attendance, violation: Violation) -> AttendancePoint:
        is_ncns = violation.point_type == PointType.WHOLE_DAY_ABSENCE.value and not violation.is_advised
        months = settings.NCNS_EXPIRY_MONTHS if is_ncns else settings.POINT_EXPIRY_MONTHS

        return AttendancePoint(
            user_id=attendance.user_id,
            attendance_id=attendance.id,
            shift_date=attendance.shift_date,
            point_type=violation.point_type,
            status=violation.status,
            points=violation.points,
            is_advised=violation.is_advised,
            violation_details=self.violation_details(attendance, violation),
            tardy_minutes=attendance.tardy_minutes,
            undertime_minutes=attendance.undertime_minutes,
            expires_at=add_months(attendance.shift_date, months),
            expiration_type=ExpirationType.NONE.value if is_ncns else ExpirationType.SRO.value,
            eligible_for_gbro=not is_ncns,
        )

    @staticmethod
    def violation_details(attendance: Attendance, violation: Violation) -> str:
        """產生違規說明文字"""
        scheduled_in = format_time(attendance.scheduled_time_in) or "N/A"
        scheduled_out = format_time(attendance.scheduled_time_out) or "N/A"
        actual_in = format_time(attendance.actual_time_in) or "N/A"
        actual_out = format_time(attendance.actual_time_out) or "N/A"

        if violation.point_type == PointType.WHOLE_DAY_ABSENCE.value:
            if violation.is_advised:
                return f"Advised Absence: Employee notified absence for the shift scheduled {scheduled_in} - {scheduled_out}."
            return (
                f"No Call, No Show (NCNS): Employee did not report for work and did not notify. "
                f"Scheduled shift: {scheduled_in} - {scheduled_out}. No biometric scans recorded."
            )
        if violation.point_type == PointType.HALF_DAY_ABSENCE.value:
            return (
                f"Half-Day Absence: Arrived {attendance.tardy_minutes or 0} minutes late. "
                f"Scheduled time in: {scheduled_in}, Actual time in: {actual_in}."
            )
        if violation.point_type == PointType.TARDY.value:
            return (
                f"Tardy: Arrived {attendance.tardy_minutes or 0} minutes late. "
                f"Scheduled time in: {scheduled_in}, Actual time in: {actual_in}."
            )
        if violation.point_type == PointType.UNDERTIME_MORE_THAN_HOUR.value:
            return (
                f"Undertime (more than 1 hour): Left {attendance.undertime_minutes or 0} minutes early. "
                f"Scheduled time out: {scheduled_out}, Actual time out: {actual_out}."
            )
        return (
            f"Undertime: Left {attendance.undertime_minutes or 0} minutes early. "
            f"Scheduled time out: {scheduled_out}, Actual time out: {actual_out}."
        )

    def excuse(self, point_id: int, reason: str, actor_id: int) -> AttendancePoint:
        """
        豁免一筆點數。

        Args:
            point_id: 點數 ID
            reason: 豁免原因（必填）
            actor_id: 執行豁免的使用者 ID（必填）

        Returns:
            更新後的點數

        Raises:
            ValidationError: 原因或執行者缺漏
            ValueError: 點數不存在、已豁免或已到期
        """
        reason = sanitize_input(reason)
        if not reason:
            raise ValidationError("Excuse reason is required", "reason")
        if not actor_id:
            raise ValidationError("Actor is required to excuse a point", "actor_id")

        point = self.db.query(AttendancePoint).filter(AttendancePoint.id == point_id).first()
        if not point:
            raise ValueError("Attendance point not found")
        if point.is_excused:
            raise ValueError("Attendance point is already excused")
        if point.is_expired:
            raise ValueError("Expired attendance points cannot be excused")

        try:
            self._mark_excused(point, reason, actor_id)
            self.cascade_recalculate(point.user_id)
            self.db.commit()
            self.db.refresh(point)

            logger.info(f"Point {point.id} for user {point.user_id} excused by {actor_id}")
            return point

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to excuse point {point_id}: {str(e)}")
            raise ValueError("Failed to excuse attendance point")

    def _mark_excused(self, point: AttendancePoint, reason: str, actor_id: int) -> None:
        point.is_excused = True
        point.excused_by = actor_id
        point.excused_at = utc_now()
        point.excuse_reason = reason
        point.gbro_expires_at = None

    def excuse_for_leave(self, user_id: int, start_date: date, end_date: date, reason: str,
                         actor_id: int, commit: bool = True) -> int:
        """
        請假核准後豁免期間內所有有效點數。

        豁免失敗只記錄錯誤，不回滾請假核准。

        Returns:
            豁免的點數數量
        """
        reason = sanitize_input(reason)
        if not reason or not actor_id:
            raise ValidationError("Excuse reason and actor are required", "reason")

        try:
            with self.db.begin_nested():
                points = self.db.query(AttendancePoint).filter(
                    and_(
                        AttendancePoint.user_id == user_id,
                        AttendancePoint.shift_date >= start_date,
                        AttendancePoint.shift_date <= end_date,
                        AttendancePoint.is_excused == False,
                        AttendancePoint.is_expired == False,
                    )
                ).all()

                for point in points:
                    self._mark_excused(point, reason, actor_id)

                if points:
                    self.cascade_recalculate(user_id)

            if commit:
                self.db.commit()

            logger.info(f"Excused {len(points)} points for user {user_id} from {start_date} to {end_date}")
            return len(points)

        except Exception as e:
            logger.error(f"Failed to excuse points for user {user_id} on leave approval: {str(e)}")
            return 0

    def expire_due_points(self, as_of: Optional[date] = None) -> int:
        """
        處理到期點數：先標記到期的 SRO 點數，再為所有有效點數的員工重算 GBRO。

        Args:
            as_of: 基準日（預設今天）

        Returns:
            本次到期的點數數量（SRO 與 GBRO 合計）
        """
        as_of = as_of or get_today()

        try:
            due = self.db.query(AttendancePoint).filter(
                and_(
                    AttendancePoint.is_excused == False,
                    AttendancePoint.is_expired == False,
                    AttendancePoint.expires_at <= as_of,
                )
            ).all()

            for point in due:
                self._mark_expired(point, ExpirationType.SRO.value, as_of)

            user_ids = [
                row[0] for row in self.db.query(AttendancePoint.user_id).filter(
                    and_(AttendancePoint.is_excused == False, AttendancePoint.is_expired == False)
                ).distinct().all()
            ]

            gbro_count = 0
            for user_id in user_ids:
                gbro_count += self.cascade_recalculate(user_id, as_of)

            self.db.commit()

            logger.info(f"Expired {len(due)} points by SRO and {gbro_count} by GBRO as of {as_of}")
            return len(due) + gbro_count

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to expire attendance points: {str(e)}")
            raise ValueError("Failed to expire attendance points")

    @staticmethod
    def _mark_expired(point: AttendancePoint, expiration_type: str, expired_on: date) -> None:
        point.is_expired = True
        point.expired_at = expired_on
        point.expiration_type = expiration_type
        point.gbro_expires_at = None

    def cascade_recalculate(self, user_id: int, as_of: Optional[date] = None) -> int:
        """
        從頭重播員工的點數歷史並重算 GBRO。

        先還原所有由 GBRO 移除的點數，再依日期順序重新計算每次 GBRO，
        最後更新剩餘點數的預計 GBRO 日期。只 flush 不 commit，由呼叫端決定交易範圍。

        Args:
            user_id: 員工 ID
            as_of: 基準日（預設今天）

        Returns:
            本次重播後較先前新增的 GBRO 到期點數數量
        """
        as_of = as_of or get_today()
        points = self.db.query(AttendancePoint).filter(
            and_(AttendancePoint.user_id == user_id, AttendancePoint.is_excused == False)
        ).order_by(AttendancePoint.shift_date, AttendancePoint.id).all()

        previously_rolled = {
            point.id for point in points if point.expiration_type == ExpirationType.GBRO.value
        }

        for point in points:
            if point.expiration_type != ExpirationType.GBRO.value:
                continue
            point.is_expired = False
            point.expired_at = None
            point.gbro_applied_at = None
            point.expiration_type = (
                ExpirationType.SRO.value if point.eligible_for_gbro else ExpirationType.NONE.value
            )
            if point.expires_at and point.expires_at <= as_of:
                self._mark_expired(point, ExpirationType.SRO.value, point.expires_at)

        snapshots = [
            PointSnapshot(point.id, point.shift_date, bool(point.eligible_for_gbro), not point.is_expired)
            for point in points
        ]
        replay = replay_gbro(
            snapshots,
            [point.shift_date for point in points],
            as_of,
            gbro_days=settings.GBRO_DAYS,
            points_per_roll_off=settings.GBRO_POINTS_PER_ROLL_OFF,
        )

        by_id = {point.id: point for point in points}
        rolled_now = set()
        for roll_off in replay.roll_offs:
            for point_id in roll_off.point_ids:
                point = by_id[point_id]
                self._mark_expired(point, ExpirationType.GBRO.value, roll_off.gbro_date)
                point.gbro_applied_at = roll_off.gbro_date
                rolled_now.add(point_id)

        remaining = [snapshot for snapshot in snapshots if snapshot.id in set(replay.remaining_ids)]
        projected = projected_gbro_dates(
            remaining, replay.anchor,
            gbro_days=settings.GBRO_DAYS,
            points_per_roll_off=settings.GBRO_POINTS_PER_ROLL_OFF,
        )
        for point in points:
            if point.id in projected:
                point.gbro_expires_at = projected[point.id]
            elif not point.is_expired:
                point.gbro_expires_at = None

        self.db.flush()
        return len(rolled_now - previously_rolled)

    def list_points(self, user_id: Optional[int] = None, start_date: Optional[date] = None,
                    end_date: Optional[date] = None, active_only: bool = False):
        """查詢點數"""
        query = self.db.query(AttendancePoint)
        if user_id:
            query = query.filter(AttendancePoint.user_id == user_id)
        if start_date:
            query = query.filter(AttendancePoint.shift_date >= start_date)
        if end_date:
            query = query.filter(AttendancePoint.shift_date <= end_date)
        if active_only:
            query = query.filter(
                and_(AttendancePoint.is_excused == False, AttendancePoint.is_expired == False)
            )
        return query.order_by(AttendancePoint.shift_date.desc(), AttendancePoint.id.desc()).all()
