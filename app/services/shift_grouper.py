"""
Groups one employee's scan events into scheduled shift instances.

Each reference date gets a search window derived from its own schedule
(scheduled in minus the early allowance, scheduled out plus the late
allowance). A scan is attributed to the window that encloses it; when two
windows overlap the scan goes to the shift whose scheduled interval is
closest. Night and graveyard boundaries follow from this arithmetic alone.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.config import settings
from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion, ShiftType
from app.schemas.shift import ShiftInstance
from app.utils.datetime_utils import daterange, day_name, minutes_between

logger = logging.getLogger(__name__)


class _DayWindow:
    __slots__ = ("reference_date", "schedule", "scheduled_in", "scheduled_out", "lower", "upper", "scans")

    def __init__(self, reference_date: date, schedule: ScheduleVersion, scheduled_in: datetime,
                 scheduled_out: datetime, lower: datetime, upper: datetime):
        self.reference_date = reference_date
        self.schedule = schedule
        self.scheduled_in = scheduled_in
        self.scheduled_out = scheduled_out
        self.lower = lower
        self.upper = upper
        self.scans: List[ScanEvent] = []

    def contains(self, timestamp: datetime) -> bool:
        return self.lower <= timestamp <= self.upper

    def distance(self, timestamp: datetime) -> float:
        if self.scheduled_in <= timestamp <= self.scheduled_out:
            return 0
        return min(abs((timestamp - self.scheduled_in).total_seconds()),
                   abs((timestamp - self.scheduled_out).total_seconds()))


class ShiftGrouper:
    """將打卡事件依班表切分為班次"""

    def __init__(self, tap_collapse_minutes: int = None, early_time_in_minutes: int = None,
                 late_time_out_minutes: int = None, double_punch_minutes: int = None,
                 max_shift_minutes: int = None):
        self.tap_collapse_minutes = settings.TAP_COLLAPSE_MINUTES if tap_collapse_minutes is None else tap_collapse_minutes
        self.early_time_in_minutes = settings.EARLY_TIME_IN_MINUTES if early_time_in_minutes is None else early_time_in_minutes
        self.late_time_out_minutes = settings.LATE_TIME_OUT_MINUTES if late_time_out_minutes is None else late_time_out_minutes
        self.double_punch_minutes = settings.DOUBLE_PUNCH_MINUTES if double_punch_minutes is None else double_punch_minutes
        self.max_shift_minutes = settings.MAX_SHIFT_MINUTES if max_shift_minutes is None else max_shift_minutes

    @staticmethod
    def resolve_schedule(schedules: Sequence[ScheduleVersion], target: date) -> Optional[ScheduleVersion]:
        """
        找出某日期生效的班表版本。

        多個版本重疊時，is_active 的版本優先，其次為生效日期最晚者。
        """
        candidates = [schedule for schedule in schedules if schedule.covers(target)]
        if not candidates:
            return None
        candidates.sort(key=lambda schedule: (schedule.is_active, schedule.effective_date), reverse=True)
        return candidates[0]

    @staticmethod
    def scheduled_window(schedule: ScheduleVersion, reference_date: date) -> Tuple[datetime, datetime]:
        """
        計算參考日期的預定上下班時間。

        下班時間不晚於上班時間的班別（夜班）下班落在隔天；午夜後才開始的
        大夜班歸屬前一個參考日期，上下班都落在隔天。
        """
        if schedule.shift_type == ShiftType.UTILITY_24H:
            start = datetime.combine(reference_date, datetime.min.time())
            return start, start + timedelta(days=1)

        scheduled_in = datetime.combine(reference_date, schedule.scheduled_time_in)
        scheduled_out = datetime.combine(reference_date, schedule.scheduled_time_out)

        if schedule.crosses_midnight:
            scheduled_out += timedelta(days=1)
        elif schedule.shift_type == ShiftType.GRAVEYARD and schedule.scheduled_time_in.hour < 5:
            scheduled_in += timedelta(days=1)
            scheduled_out += timedelta(days=1)

        return scheduled_in, scheduled_out

    def build_windows(self, schedules: Sequence[ScheduleVersion], start_date: date,
                      end_date: date) -> Dict[date, _DayWindow]:
        windows: Dict[date, _DayWindow] = {}
        # 前後各多算一天，避免相鄰日期的打卡被誤判到範圍內
        for reference_date in daterange(start_date - timedelta(days=1), end_date + timedelta(days=1)):
            schedule = self.resolve_schedule(schedules, reference_date)
            if schedule is None:
                continue

            scheduled_in, scheduled_out = self.scheduled_window(schedule, reference_date)
            if schedule.shift_type == ShiftType.UTILITY_24H:
                lower, upper = scheduled_in, scheduled_out - timedelta(seconds=1)
            else:
                lower = scheduled_in - timedelta(minutes=self.early_time_in_minutes)
                upper = scheduled_out + timedelta(minutes=self.late_time_out_minutes)

            windows[reference_date] = _DayWindow(reference_date, schedule, scheduled_in, scheduled_out, lower, upper)
        return windows

    def collapse_taps(self, scans: Iterable[ScanEvent]) -> List[ScanEvent]:
        """合併數分鐘內的連續打卡（保留第一筆）"""
        collapsed: List[ScanEvent] = []
        for scan in sorted(scans, key=lambda event: event.timestamp):
            if collapsed and (scan.timestamp - collapsed[-1].timestamp) <= timedelta(minutes=self.tap_collapse_minutes):
                continue
            collapsed.append(scan)
        return collapsed

    def group(self, scan_events: Sequence[ScanEvent], schedules: Sequence[ScheduleVersion],
              start_date: date, end_date: date) -> List[ShiftInstance]:
        """
        將單一員工的打卡事件切分為班次。

        範圍內每個有班表的工作日都會產生一個班次，即使完全沒有打卡（缺勤）
        或只配對到一邊。非工作日只有在有打卡時才產生；沒有班表但有打卡的
        日期會產生沒有班表的班次，交由人工審核。

        Args:
            scan_events: 單一員工的打卡事件
            schedules: 該員工的班表版本
            start_date: 範圍起始參考日期
            end_date: 範圍結束參考日期

        Returns:
            依參考日期排序的 ShiftInstance 清單
        """
        events = sorted(scan_events, key=lambda event: event.timestamp)
        employee_key = events[0].employee_key if events else ""
        user_id = next((event.user_id for event in events if event.user_id is not None), None)
        if user_id is None and schedules:
            user_id = schedules[0].user_id

        windows = self.build_windows(schedules, start_date, end_date)
        unassigned: Dict[date, List[ScanEvent]] = {}

        for event in events:
            enclosing = [window for window in windows.values() if window.contains(event.timestamp)]
            if not enclosing:
                unassigned.setdefault(event.timestamp.date(), []).append(event)
                continue
            best = min(enclosing, key=lambda window: (window.distance(event.timestamp), window.reference_date))
            best.scans.append(event)

        instances: List[ShiftInstance] = []
        for reference_date in daterange(start_date, end_date):
            window = windows.get(reference_date)

            if window is None:
                stray = unassigned.get(reference_date)
                if stray:
                    instances.append(ShiftInstance(
                        employee_key=employee_key,
                        user_id=user_id,
                        reference_date=reference_date,
                        scans=stray,
                        warnings=["No active schedule for this date"],
                    ))
                continue

            is_work_day = window.schedule.works_on_day(day_name(reference_date))
            if not is_work_day and not window.scans:
                continue

            instances.append(self.pair_scans(window, employee_key, user_id, is_work_day))

        return instances

    def pair_scans(self, window: _DayWindow, employee_key: str, user_id: Optional[int],
                   is_work_day: bool) -> ShiftInstance:
        """在單一班次窗口內挑出上班與下班打卡"""
        scans = self.collapse_taps(window.scans)
        warnings: List[str] = []
        time_in: Optional[ScanEvent] = None
        time_out: Optional[ScanEvent] = None

        if window.schedule.shift_type == ShiftType.UTILITY_24H:
            # 24 小時班只看當天第一筆與最後一筆
            if scans:
                time_in = scans[0]
            if len(scans) > 1:
                time_out = scans[-1]
        else:
            midpoint = window.scheduled_in + (window.scheduled_out - window.scheduled_in) / 2
            before = [scan for scan in scans if scan.timestamp < midpoint]
            after = [scan for scan in scans if scan.timestamp >= midpoint]
            time_in = before[0] if before else None
            time_out = after[0] if after else None
            if len(after) > 1:
                # 中點後較晚的打卡列入警告
                later = ", ".join(f"{scan.timestamp:%Y-%m-%d %H:%M}" for scan in after[1:])
                warnings.append(
                    f"Time out taken from {time_out.timestamp:%Y-%m-%d %H:%M}; later scan(s) not used: {later}"
                )

        ignored = len(scans) - len([scan for scan in (time_in, time_out) if scan is not None])
        if ignored > 0 and window.schedule.shift_type != ShiftType.UTILITY_24H:
            warnings.append(f"{ignored} additional scan(s) in the shift window were not used")

        if time_in and time_out:
            worked = minutes_between(time_in.timestamp, time_out.timestamp)
            if worked < self.double_punch_minutes:
                warnings.append(
                    f"DOUBLE PUNCH DETECTED: time in {time_in.timestamp:%H:%M} and time out "
                    f"{time_out.timestamp:%H:%M} are only {worked} minutes apart; time out ignored"
                )
                logger.warning(f"Double punch for {employee_key} on {window.reference_date}")
                time_out = None
            elif worked > self.max_shift_minutes:
                warnings.append(
                    f"EXCESSIVE DURATION: {worked // 60}h {worked % 60}m between time in and time out; time out ignored"
                )
                logger.warning(f"Excessive shift duration for {employee_key} on {window.reference_date}")
                time_out = None

        return ShiftInstance(
            employee_key=employee_key,
            user_id=user_id,
            reference_date=window.reference_date,
            schedule=window.schedule,
            scheduled_time_in=window.scheduled_in,
            scheduled_time_out=window.scheduled_out,
            is_work_day=is_work_day,
            matched_scan_in=time_in,
            matched_scan_out=time_out,
            scans=window.scans,
            warnings=warnings,
        )
