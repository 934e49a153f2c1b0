from datetime import date, datetime, time

from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion
from app.services.name_normalizer import normalize_name


def make_schedule(time_in=time(22, 0), time_out=time(6, 0), shift_type="night", grace=15,
                  site_id=None, work_days=None, effective_date=date(2024, 1, 1)) -> ScheduleVersion:
    return ScheduleVersion(
        id=1,
        user_id=1,
        site_id=site_id,
        shift_type=shift_type,
        scheduled_time_in=time_in,
        scheduled_time_out=time_out,
        work_days=work_days or ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"],
        grace_period_minutes=grace,
        effective_date=effective_date,
    )


def make_scan(timestamp: str, name="Juan Dela Cruz", site_id=None, user_id=1) -> ScanEvent:
    return ScanEvent(
        employee_key=normalize_name(name),
        raw_name=name,
        timestamp=datetime.strptime(timestamp, "%Y-%m-%d %H:%M"),
        site_id=site_id,
        user_id=user_id,
    )


def scan_log(*rows) -> bytes:
    """rows: (device_no, device_user_id, name, 'Y-m-d H:i:s')"""
    lines = ["No\tDevNo\tUserId\tName\tMode\tDateTime"]
    for index, (device_no, device_user_id, name, timestamp) in enumerate(rows, start=1):
        lines.append(f"{index}\t{device_no}\t{device_user_id}\t{name}\tFP\t{timestamp}")
    return "\n".join(lines).encode("utf-8")
