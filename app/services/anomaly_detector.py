"""
Audit checks over raw biometric scans, independent of shift classification.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from app.config import settings
from app.schemas.anomaly import Anomaly, AnomalyStatistics, AnomalyType, AnomalyUser, Severity
from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion
from app.services.shift_grouper import ShiftGrouper

logger = logging.getLogger(__name__)


class AnomalyDetector:
    """
    打卡異常偵測。

    每一項檢查各自獨立且不寫入資料庫，結果僅供人工審核參考，
    不會自動套用到出勤紀錄。
    """

    def __init__(self):
        self.grouper = ShiftGrouper()

    def detect(self, scan_events: Iterable[ScanEvent], start_date: date, end_date: date,
               schedules: Optional[Dict[str, Sequence[ScheduleVersion]]] = None) -> Dict[str, List[Anomaly]]:
        """
        偵測日期範圍內的所有異常。

        Args:
            scan_events: 原始打卡事件
            start_date: 起始日期
            end_date: 結束日期
            schedules: 以正規化姓名為鍵的班表版本（可選，用於判斷非常規時段）

        Returns:
            以異常類型為鍵的異常清單
        """
        schedules = schedules or {}
        by_employee: Dict[str, List[ScanEvent]] = defaultdict(list)
        for event in scan_events:
            if start_date <= event.timestamp.date() <= end_date:
                by_employee[event.employee_key].append(event)

        results: Dict[str, List[Anomaly]] = {anomaly_type.value: [] for anomaly_type in AnomalyType}

        for employee_key in sorted(by_employee):
            events = sorted(by_employee[employee_key], key=lambda event: event.timestamp)
            results[AnomalyType.SIMULTANEOUS_SITES.value].extend(self.detect_simultaneous_sites(events))
            results[AnomalyType.DUPLICATE_SCANS.value].extend(self.detect_duplicate_scans(events))
            results[AnomalyType.UNUSUAL_HOURS.value].extend(
                self.detect_unusual_hours(events, schedules.get(employee_key, []))
            )
            results[AnomalyType.EXCESSIVE_SCANS.value].extend(self.detect_excessive_scans(events))
            results[AnomalyType.IMPOSSIBLE_GAPS.value].extend(self.detect_impossible_gaps(events))

        total = sum(len(items) for items in results.values())
        logger.info(f"Anomaly detection {start_date} to {end_date}: {total} anomalies across {len(by_employee)} employees")
        return results

    @staticmethod
    def _user(events: Sequence[ScanEvent]) -> AnomalyUser:
        first = events[0]
        return AnomalyUser(employee_key=first.employee_key, name=first.raw_name, user_id=first.user_id)

    def detect_simultaneous_sites(self, events: Sequence[ScanEvent]) -> List[Anomaly]:
        """相鄰兩筆打卡來自不同站點，且間隔短到不可能移動過去"""
        anomalies = []
        for previous, current in zip(events, events[1:]):
            if previous.site_id is None or current.site_id is None or previous.site_id == current.site_id:
                continue

            gap = (current.timestamp - previous.timestamp).total_seconds() / 60
            if gap >= settings.MAX_TRAVEL_MINUTES:
                continue

            severity = Severity.HIGH if gap < settings.IMPLAUSIBLE_TRAVEL_MINUTES else Severity.MEDIUM
            anomalies.append(Anomaly(
                type=AnomalyType.SIMULTANEOUS_SITES,
                severity=severity,
                description=f"Scanned at site {previous.site_id} and site {current.site_id} only {int(gap)} minutes apart",
                user=self._user(events),
                records=[previous, current],
                details={
                    "gap_minutes": round(gap, 1),
                    "sites": [previous.site_id, current.site_id],
                },
            ))
        return anomalies

    def detect_duplicate_scans(self, events: Sequence[ScanEvent]) -> List[Anomaly]:
        """短時間內連續打卡三次以上"""
        anomalies = []
        window = timedelta(minutes=settings.DUPLICATE_WINDOW_MINUTES)
        index = 0

        while index < len(events):
            cluster = [events[index]]
            cursor = index + 1
            while cursor < len(events) and events[cursor].timestamp - cluster[-1].timestamp <= window:
                cluster.append(events[cursor])
                cursor += 1

            if len(cluster) >= settings.DUPLICATE_MIN_SCANS:
                anomalies.append(Anomaly(
                    type=AnomalyType.DUPLICATE_SCANS,
                    severity=Severity.LOW,
                    description=f"{len(cluster)} scans within {settings.DUPLICATE_WINDOW_MINUTES} minutes starting {cluster[0].timestamp:%Y-%m-%d %H:%M}",
                    user=self._user(events),
                    records=cluster,
                    details={"count": len(cluster)},
                ))
            index = cursor

        return anomalies

    def detect_unusual_hours(self, events: Sequence[ScanEvent],
                             schedules: Sequence[ScheduleVersion]) -> List[Anomaly]:
        """
        遠離任何合理班次窗口的打卡。

        有班表時以班表窗口（預定時間前後的容許範圍）判斷；沒有班表時以凌晨時段判斷。
        """
        anomalies = []

        if schedules:
            first_day = events[0].timestamp.date() if events else None
            last_day = events[-1].timestamp.date() if events else None
            if first_day is None:
                return anomalies
            windows = self.grouper.build_windows(schedules, first_day, last_day)

            for event in events:
                if any(window.contains(event.timestamp) for window in windows.values()):
                    continue
                anomalies.append(Anomaly(
                    type=AnomalyType.UNUSUAL_HOURS,
                    severity=Severity.MEDIUM,
                    description=f"Scan at {event.timestamp:%Y-%m-%d %H:%M} is outside every scheduled shift window",
                    user=self._user(events),
                    records=[event],
                    details={"hour": event.timestamp.hour, "schedule_known": True},
                ))
            return anomalies

        for event in events:
            if settings.UNUSUAL_HOUR_START <= event.timestamp.hour < settings.UNUSUAL_HOUR_END:
                anomalies.append(Anomaly(
                    type=AnomalyType.UNUSUAL_HOURS,
                    severity=Severity.LOW,
                    description=f"Scan at {event.timestamp:%Y-%m-%d %H:%M} during unusual hours",
                    user=self._user(events),
                    records=[event],
                    details={"hour": event.timestamp.hour, "schedule_known": False},
                ))
        return anomalies

    def detect_excessive_scans(self, events: Sequence[ScanEvent]) -> List[Anomaly]:
        """單日打卡次數超過上限"""
        anomalies = []
        for day, day_events in self._by_day(events).items():
            count = len(day_events)
            if count <= settings.MAX_SCANS_PER_DAY:
                continue

            severity = Severity.HIGH if count > settings.MAX_SCANS_PER_DAY + 4 else Severity.MEDIUM
            anomalies.append(Anomaly(
                type=AnomalyType.EXCESSIVE_SCANS,
                severity=severity,
                description=f"{count} scans on {day} (limit {settings.MAX_SCANS_PER_DAY})",
                user=self._user(events),
                records=day_events,
                details={"date": day.isoformat(), "count": count},
            ))
        return anomalies

    def detect_impossible_gaps(self, events: Sequence[ScanEvent]) -> List[Anomaly]:
        """當日第一筆與最後一筆打卡的間隔與單一班次不符（過短或過長）"""
        anomalies = []
        window = timedelta(minutes=settings.DUPLICATE_WINDOW_MINUTES)

        for day, day_events in self._by_day(events).items():
            if len(day_events) < 2:
                continue

            first, last = day_events[0], day_events[-1]
            gap_minutes = int((last.timestamp - first.timestamp).total_seconds() // 60)

            if last.timestamp - first.timestamp <= window:
                # 連續重複打卡由 duplicate_scans 處理
                continue

            if gap_minutes < settings.MIN_SHIFT_GAP_MINUTES:
                severity = Severity.MEDIUM
                description = f"First and last scans on {day} are only {gap_minutes} minutes apart"
            elif gap_minutes > settings.MAX_DAILY_GAP_MINUTES:
                severity = Severity.HIGH
                description = f"First and last scans on {day} are {gap_minutes // 60}h {gap_minutes % 60}m apart"
            else:
                continue

            anomalies.append(Anomaly(
                type=AnomalyType.IMPOSSIBLE_GAPS,
                severity=severity,
                description=description,
                user=self._user(events),
                records=[first, last],
                details={"date": day.isoformat(), "gap_minutes": gap_minutes},
            ))
        return anomalies

    @staticmethod
    def _by_day(events: Sequence[ScanEvent]) -> Dict[date, List[ScanEvent]]:
        days: Dict[date, List[ScanEvent]] = defaultdict(list)
        for event in events:
            days[event.timestamp.date()].append(event)
        return dict(sorted(days.items()))

    @staticmethod
    def statistics(results: Dict[str, List[Anomaly]]) -> AnomalyStatistics:
        """統計異常數量（依類型與嚴重度）"""
        by_type = {anomaly_type: len(items) for anomaly_type, items in results.items()}
        by_severity = {severity.value: 0 for severity in Severity}
        for items in results.values():
            for anomaly in items:
                by_severity[anomaly.severity.value] += 1
        return AnomalyStatistics(total=sum(by_type.values()), by_type=by_type, by_severity=by_severity)
