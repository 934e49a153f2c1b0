"""
Attendance export: fixed-column data table plus a formula-driven statistics table.
"""

import csv
import io
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.models.attendance import Attendance
from app.models.user import Site
from app.schemas.attendance import AttendanceStatus
from app.utils.datetime_utils import format_datetime

logger = logging.getLogger(__name__)

DATA_SHEET = "Attendance"

EXPORT_COLUMNS = [
    "User ID",
    "Employee Name",
    "Campaign",
    "Shift Date",
    "Scheduled Time In",
    "Scheduled Time Out",
    "Actual Time In",
    "Actual Time Out",
    "Time In Site",
    "Time Out Site",
    "Status",
    "Secondary Status",
    "Tardy Minutes",
    "Undertime Minutes",
    "Overtime Minutes",
    "OT Approved",
    "Cross-Site Bio",
    "Admin Verified",
]

# 統計公式引用的欄位字母，與 EXPORT_COLUMNS 順序一致
STATUS_COLUMN = "K"
SECONDARY_STATUS_COLUMN = "L"
TARDY_COLUMN = "M"
UNDERTIME_COLUMN = "N"
OVERTIME_COLUMN = "O"
OT_APPROVED_COLUMN = "P"
CROSS_SITE_COLUMN = "Q"
VERIFIED_COLUMN = "R"

STATISTIC_STATUSES = [
    AttendanceStatus.ON_TIME.value,
    AttendanceStatus.TARDY.value,
    AttendanceStatus.HALF_DAY_ABSENCE.value,
    AttendanceStatus.NCNS.value,
    AttendanceStatus.ADVISED_ABSENCE.value,
    AttendanceStatus.FAILED_BIO_IN.value,
    AttendanceStatus.FAILED_BIO_OUT.value,
    AttendanceStatus.ON_LEAVE.value,
    AttendanceStatus.NEEDS_MANUAL_REVIEW.value,
]


def _yes_no(value) -> str:
    return "Yes" if value else "No"


class ExportService:
    """出勤匯出服務"""

    def __init__(self, db: Session):
        self.db = db

    def fetch_attendances(self, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                          site_id: Optional[int] = None) -> List[Attendance]:
        query = self.db.query(Attendance).options(
            joinedload(Attendance.user), joinedload(Attendance.schedule)
        ).filter(
            and_(Attendance.shift_date >= start_date, Attendance.shift_date <= end_date)
        )
        if user_ids:
            query = query.filter(Attendance.user_id.in_(user_ids))
        if site_id:
            query = query.filter(Attendance.bio_in_site_id == site_id)
        return query.order_by(Attendance.shift_date, Attendance.user_id).all()

    def build_rows(self, attendances: List[Attendance],
                   progress: Optional[Callable[[int, str], None]] = None) -> List[Dict]:
        """將出勤紀錄轉為固定欄位的資料列"""
        site_names = {site.id: site.name for site in self.db.query(Site).all()}
        rows = []
        total = len(attendances)
        fmt = settings.EXPORT_DATETIME_FORMAT

        for index, attendance in enumerate(attendances, start=1):
            schedule = attendance.schedule
            rows.append({
                "User ID": attendance.user_id,
                "Employee Name": attendance.user.full_name if attendance.user else "",
                "Campaign": schedule.campaign_id if schedule and schedule.campaign_id else "",
                "Shift Date": attendance.shift_date.strftime(settings.EXPORT_DATE_FORMAT),
                "Scheduled Time In": format_datetime(attendance.scheduled_time_in, fmt),
                "Scheduled Time Out": format_datetime(attendance.scheduled_time_out, fmt),
                "Actual Time In": format_datetime(attendance.actual_time_in, fmt),
                "Actual Time Out": format_datetime(attendance.actual_time_out, fmt),
                "Time In Site": site_names.get(attendance.bio_in_site_id, ""),
                "Time Out Site": site_names.get(attendance.bio_out_site_id, ""),
                "Status": attendance.status,
                "Secondary Status": attendance.secondary_status or "",
                "Tardy Minutes": attendance.tardy_minutes if attendance.tardy_minutes is not None else "",
                "Undertime Minutes": attendance.undertime_minutes if attendance.undertime_minutes is not None else "",
                "Overtime Minutes": attendance.overtime_minutes if attendance.overtime_minutes is not None else "",
                "OT Approved": _yes_no(attendance.overtime_approved),
                "Cross-Site Bio": _yes_no(attendance.is_cross_site_bio),
                "Admin Verified": _yes_no(attendance.admin_verified),
            })
            if progress and total and index % 100 == 0:
                progress(int(index * 90 / total), f"Prepared {index} of {total} rows")

        return rows

    @staticmethod
    def statistics_rows(rows: List[Dict]) -> List[Dict]:
        """
        統計表：每一列含公式（引用資料表的固定欄位）與計算值。

        公式供試算表使用，計算值供 API 直接使用。
        """
        last_row = len(rows) + 1

        def column_range(letter: str) -> str:
            return f"{DATA_SHEET}!{letter}2:{letter}{last_row}"

        def to_int(value) -> int:
            return int(value) if value not in ("", None) else 0

        stats = [{
            "Metric": "Total Records",
            "Formula": f"=COUNTA({column_range('A')})",
            "Value": len(rows),
        }]

        for status in STATISTIC_STATUSES:
            stats.append({
                "Metric": f"Status: {status}",
                "Formula": f'=COUNTIF({column_range(STATUS_COLUMN)},"{status}")',
                "Value": sum(1 for row in rows if row["Status"] == status),
            })

        stats.append({
            "Metric": "Secondary: failed_bio_out",
            "Formula": f'=COUNTIF({column_range(SECONDARY_STATUS_COLUMN)},"failed_bio_out")',
            "Value": sum(1 for row in rows if row["Secondary Status"] == "failed_bio_out"),
        })

        for label, letter, field in (
            ("Total Tardy Minutes", TARDY_COLUMN, "Tardy Minutes"),
            ("Total Undertime Minutes", UNDERTIME_COLUMN, "Undertime Minutes"),
            ("Total Overtime Minutes", OVERTIME_COLUMN, "Overtime Minutes"),
        ):
            stats.append({
                "Metric": label,
                "Formula": f"=SUM({column_range(letter)})",
                "Value": sum(to_int(row[field]) for row in rows),
            })

        for label, letter, field in (
            ("OT Approved", OT_APPROVED_COLUMN, "OT Approved"),
            ("Cross-Site Bio", CROSS_SITE_COLUMN, "Cross-Site Bio"),
            ("Admin Verified", VERIFIED_COLUMN, "Admin Verified"),
        ):
            stats.append({
                "Metric": label,
                "Formula": f'=COUNTIF({column_range(letter)},"Yes")',
                "Value": sum(1 for row in rows if row[field] == "Yes"),
            })

        return stats

    def export_attendance(self, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                          site_id: Optional[int] = None,
                          progress: Optional[Callable[[int, str], None]] = None) -> Tuple[bytes, str, str]:
        """
        匯出出勤資料表（CSV）。

        Returns:
            (檔案內容, 檔名, content type)
        """
        try:
            rows = self.build_rows(self.fetch_attendances(start_date, end_date, user_ids, site_id), progress)
            content = self._export_to_csv(rows, EXPORT_COLUMNS)
            filename = f"attendance_{start_date.strftime('%Y%m%d')}_to_{end_date.strftime('%Y%m%d')}.csv"
            logger.info(f"Exported {len(rows)} attendance rows for {start_date} to {end_date}")
            return content, filename, "text/csv"

        except Exception as e:
            logger.error(f"Failed to export attendance: {str(e)}")
            raise ValueError("Failed to export attendance")

    def export_statistics(self, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                          site_id: Optional[int] = None) -> Tuple[bytes, str, List[Dict]]:
        """
        匯出統計表（CSV）並回傳統計列。

        Returns:
            (檔案內容, 檔名, 統計列)
        """
        try:
            rows = self.build_rows(self.fetch_attendances(start_date, end_date, user_ids, site_id))
            stats = self.statistics_rows(rows)
            content = self._export_to_csv(stats, ["Metric", "Formula", "Value"])
            filename = f"attendance_statistics_{start_date.strftime('%Y%m%d')}_to_{end_date.strftime('%Y%m%d')}.csv"
            return content, filename, stats

        except Exception as e:
            logger.error(f"Failed to export attendance statistics: {str(e)}")
            raise ValueError("Failed to export attendance statistics")

    def _export_to_csv(self, data: List[Dict], fieldnames: List[str]) -> bytes:
        """匯出資料為 CSV 格式"""
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=fieldnames)

        writer.writeheader()
        for row in data:
            writer.writerow(row)

        return output.getvalue().encode('utf-8')
