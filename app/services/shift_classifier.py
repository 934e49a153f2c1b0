"""
Classifies a grouped shift into attendance status and minute deviations.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from app.config import settings
from app.schemas.attendance import AttendanceStatus
from app.schemas.schedule import ScheduleVersion, ShiftType
from app.schemas.shift import ShiftInstance, ClassificationResult
from app.utils.datetime_utils import minutes_between, truncate_to_minute

logger = logging.getLogger(__name__)

# 由打卡時間推導的狀態，修正作業只會重新判定這些狀態
BIO_DERIVED_STATUSES = {
    AttendanceStatus.ON_TIME.value,
    AttendanceStatus.TARDY.value,
    AttendanceStatus.HALF_DAY_ABSENCE.value,
    AttendanceStatus.NCNS.value,
    AttendanceStatus.FAILED_BIO_IN.value,
    AttendanceStatus.FAILED_BIO_OUT.value,
    AttendanceStatus.UNDERTIME.value,
    AttendanceStatus.UNDERTIME_MORE_THAN_HOUR.value,
}

UTILITY_MINIMUM_MINUTES = 8 * 60


class ShiftClassifier:
    """
    班次判定。

    遲到的判定基準：實際上班時間先扣除班表的寬限時間，超過 0 分鐘才算遲到，
    超過半天門檻（預設 15 分鐘）則為半天缺勤；tardy_minutes 一律記錄實際
    遲到分鐘數。即時處理與狀態修正作業共用此規則。
    """

    def __init__(self, half_day_threshold_minutes: int = None, overtime_threshold_minutes: int = None):
        self.half_day_threshold_minutes = (
            settings.HALF_DAY_THRESHOLD_MINUTES if half_day_threshold_minutes is None else half_day_threshold_minutes
        )
        self.overtime_threshold_minutes = (
            settings.OVERTIME_THRESHOLD_MINUTES if overtime_threshold_minutes is None else overtime_threshold_minutes
        )

    def classify(self, instance: ShiftInstance, overtime_approved: bool = False) -> ClassificationResult:
        """
        判定單一班次。

        同一個 ShiftInstance 重複判定會得到完全相同的結果。

        Args:
            instance: 分組後的班次
            overtime_approved: 加班是否已核准（影響工時計算）

        Returns:
            ClassificationResult
        """
        time_in = instance.matched_scan_in
        time_out = instance.matched_scan_out

        if instance.schedule is None:
            scans = sorted(instance.scans, key=lambda scan: scan.timestamp)
            first = scans[0] if scans else None
            last = scans[-1] if len(scans) > 1 else None
            return ClassificationResult(
                status=AttendanceStatus.NEEDS_MANUAL_REVIEW.value,
                actual_time_in=first.timestamp if first else None,
                actual_time_out=last.timestamp if last else None,
                bio_in_site_id=first.site_id if first else None,
                bio_out_site_id=last.site_id if last else None,
                warnings=list(instance.warnings),
            )

        if not instance.is_work_day:
            return ClassificationResult(
                status=AttendanceStatus.NON_WORK_DAY.value,
                actual_time_in=time_in.timestamp if time_in else None,
                actual_time_out=time_out.timestamp if time_out else None,
                bio_in_site_id=time_in.site_id if time_in else None,
                bio_out_site_id=time_out.site_id if time_out else None,
                warnings=list(instance.warnings) + ["Scans recorded on a non-work day"],
            )

        if time_in is None and time_out is None and instance.leave_request_id is not None:
            return ClassificationResult(status=AttendanceStatus.ON_LEAVE.value, warnings=list(instance.warnings))

        result = self.evaluate(
            schedule=instance.schedule,
            scheduled_time_in=instance.scheduled_time_in,
            scheduled_time_out=instance.scheduled_time_out,
            actual_time_in=time_in.timestamp if time_in else None,
            actual_time_out=time_out.timestamp if time_out else None,
            bio_in_site_id=time_in.site_id if time_in else None,
            bio_out_site_id=time_out.site_id if time_out else None,
            overtime_approved=overtime_approved,
        )
        result.warnings = list(instance.warnings) + result.warnings
        return result

    def evaluate(self, schedule: ScheduleVersion, scheduled_time_in: datetime, scheduled_time_out: datetime,
                 actual_time_in: Optional[datetime], actual_time_out: Optional[datetime],
                 bio_in_site_id: Optional[int] = None, bio_out_site_id: Optional[int] = None,
                 overtime_approved: bool = False) -> ClassificationResult:
        """
        依預定與實際時間計算狀態與分鐘數。

        Args:
            schedule: 生效中的班表版本
            scheduled_time_in: 預定上班時間
            scheduled_time_out: 預定下班時間（跨午夜時已是隔天）
            actual_time_in: 實際上班打卡
            actual_time_out: 實際下班打卡
            bio_in_site_id: 上班打卡站點
            bio_out_site_id: 下班打卡站點
            overtime_approved: 加班是否已核准

        Returns:
            ClassificationResult
        """
        result = ClassificationResult(
            status=AttendanceStatus.NCNS.value,
            actual_time_in=actual_time_in,
            actual_time_out=actual_time_out,
            bio_in_site_id=bio_in_site_id,
            bio_out_site_id=bio_out_site_id,
        )

        if actual_time_in is None and actual_time_out is None:
            return result

        result.is_cross_site_bio = self.is_cross_site(schedule.site_id, bio_in_site_id, bio_out_site_id)
        result.warnings = self.extreme_pattern_warnings(
            scheduled_time_in, scheduled_time_out, actual_time_in, actual_time_out
        )

        if schedule.shift_type == ShiftType.UTILITY_24H:
            return self._evaluate_utility(result, actual_time_in, actual_time_out)

        if actual_time_in is None:
            result.status = AttendanceStatus.FAILED_BIO_IN.value
            return result

        time_in_status, tardy_minutes = self.time_in_status(
            scheduled_time_in, actual_time_in, schedule.grace_period_minutes
        )
        result.tardy_minutes = tardy_minutes

        if actual_time_out is None:
            if time_in_status == AttendanceStatus.ON_TIME.value:
                result.status = AttendanceStatus.FAILED_BIO_OUT.value
            else:
                result.status = time_in_status
                result.secondary_status = AttendanceStatus.FAILED_BIO_OUT.value
            return result

        result.status = time_in_status
        result.undertime_minutes, result.overtime_minutes = self.time_out_deviation(scheduled_time_out, actual_time_out)
        result.total_minutes_worked = self.total_minutes_worked(
            scheduled_time_in, scheduled_time_out, actual_time_in, actual_time_out, overtime_approved
        )
        return result

    def time_in_status(self, scheduled_time_in: datetime, actual_time_in: datetime,
                       grace_period_minutes: Optional[int]) -> Tuple[str, Optional[int]]:
        """
        判定上班狀態。

        Returns:
            (狀態, 遲到分鐘數)；準時時遲到分鐘數為 None
        """
        late = minutes_between(scheduled_time_in, actual_time_in)
        beyond_grace = late - (grace_period_minutes or 0)

        if beyond_grace <= 0:
            return AttendanceStatus.ON_TIME.value, None
        if beyond_grace <= self.half_day_threshold_minutes:
            return AttendanceStatus.TARDY.value, late
        return AttendanceStatus.HALF_DAY_ABSENCE.value, late

    def time_out_deviation(self, scheduled_time_out: datetime,
                           actual_time_out: datetime) -> Tuple[Optional[int], Optional[int]]:
        """
        計算早退與加班分鐘數（互斥）。

        Returns:
            (早退分鐘數, 加班分鐘數)
        """
        early = minutes_between(actual_time_out, scheduled_time_out)
        if early >= 1:
            return early, None

        late = -early
        if late > self.overtime_threshold_minutes:
            return None, late
        return None, None

    @staticmethod
    def is_cross_site(scheduled_site_id: Optional[int], bio_in_site_id: Optional[int],
                      bio_out_site_id: Optional[int]) -> bool:
        """上下班打卡站點彼此不同，或與班表站點不同"""
        sites = [site for site in (bio_in_site_id, bio_out_site_id) if site is not None]
        if len(sites) == 2 and sites[0] != sites[1]:
            return True
        if scheduled_site_id is None:
            return False
        return any(site != scheduled_site_id for site in sites)

    def total_minutes_worked(self, scheduled_time_in: datetime, scheduled_time_out: datetime,
                             actual_time_in: Optional[datetime], actual_time_out: Optional[datetime],
                             overtime_approved: bool = False) -> Optional[int]:
        """
        計算實際工時（分鐘）。

        早到不計入工時；未核准加班時只算到預定下班時間；超過 5 小時扣除午休。
        """
        if actual_time_in is None or actual_time_out is None:
            return None

        start = max(truncate_to_minute(actual_time_in), scheduled_time_in)
        end = truncate_to_minute(actual_time_out)
        if not overtime_approved:
            end = min(end, scheduled_time_out)

        worked = int((end - start).total_seconds() // 60)
        if worked <= 0:
            return 0
        if worked > settings.LUNCH_DEDUCTION_AFTER_MINUTES:
            worked -= settings.LUNCH_DEDUCTION_MINUTES
        return worked

    @staticmethod
    def extreme_pattern_warnings(scheduled_time_in: datetime, scheduled_time_out: datetime,
                                 actual_time_in: Optional[datetime],
                                 actual_time_out: Optional[datetime]) -> List[str]:
        """偏離預定時間過多的打卡，需要人工確認"""
        warnings = []

        if actual_time_in is not None:
            early = minutes_between(actual_time_in, scheduled_time_in)
            if early > settings.EXTREME_EARLY_IN_MINUTES:
                warnings.append(f"Time in is {early // 60}h {early % 60}m before the scheduled start; verify the shift")

        if actual_time_out is not None:
            deviation = minutes_between(scheduled_time_out, actual_time_out)
            if deviation > settings.EXTREME_LATE_OUT_MINUTES:
                warnings.append(f"Time out is {deviation // 60}h {deviation % 60}m after the scheduled end; verify the shift")
            elif -deviation > settings.EXTREME_EARLY_OUT_MINUTES:
                deviation = -deviation
                warnings.append(f"Time out is {deviation // 60}h {deviation % 60}m before the scheduled end; verify the shift")

        return warnings

    def _evaluate_utility(self, result: ClassificationResult, actual_time_in: Optional[datetime],
                          actual_time_out: Optional[datetime]) -> ClassificationResult:
        # 24 小時班：只要求滿 8 小時，不計遲到
        result.warnings = []
        if actual_time_in is None or actual_time_out is None:
            result.status = AttendanceStatus.FAILED_BIO_OUT.value
            return result

        worked = minutes_between(actual_time_in, actual_time_out)
        result.total_minutes_worked = worked
        if worked >= UTILITY_MINIMUM_MINUTES:
            result.status = AttendanceStatus.ON_TIME.value
        else:
            result.status = AttendanceStatus.UNDERTIME.value
            result.undertime_minutes = UTILITY_MINIMUM_MINUTES - worked
            result.warnings.append(f"Utility shift worked {worked // 60}h {worked % 60}m, below the 8 hour minimum")
        return result
