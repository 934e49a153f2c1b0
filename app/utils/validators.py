import re
from datetime import date, time
from typing import List, Optional


SHIFT_TYPES = ['morning', 'afternoon', 'evening', 'night', 'graveyard', 'utility_24h']

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

ATTENDANCE_STATUSES = [
    'on_time',
    'tardy',
    'half_day_absence',
    'advised_absence',
    'ncns',
    'undertime',
    'undertime_more_than_hour',
    'failed_bio_in',
    'failed_bio_out',
    'present_no_bio',
    'needs_manual_review',
    'non_work_day',
    'on_leave',
]


class ValidationError(Exception):
    """驗證錯誤異常"""

    def __init__(self, message: str, field: str = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def sanitize_input(text: str) -> str:
    """清理輸入文字"""
    if not text:
        return ""

    # 移除前後空白
    text = text.strip()

    # 移除多餘的空白字符
    text = re.sub(r'\s+', ' ', text)

    return text


def validate_date_range(start_date: date, end_date: date, max_days: int = 366) -> bool:
    """驗證日期範圍"""
    if start_date is None or end_date is None:
        return False

    if start_date > end_date:
        return False

    # 單次處理不能超過一年
    if (end_date - start_date).days > max_days:
        return False

    return True


def validate_file_extension(filename: str, allowed_extensions: list) -> bool:
    """驗證檔案副檔名"""
    if not filename or '.' not in filename:
        return False

    extension = filename.rsplit('.', 1)[1].lower()
    return extension in [ext.lower() for ext in allowed_extensions]


def validate_file_size(file_size: int, max_size: int) -> bool:
    """驗證檔案大小"""
    return 0 < file_size <= max_size


def validate_attendance_status(status: str) -> bool:
    """驗證出勤狀態"""
    return status in ATTENDANCE_STATUSES


def validate_shift_type(shift_type: str) -> bool:
    """驗證班別類型"""
    return shift_type in SHIFT_TYPES


def validate_work_days(work_days: List[str]) -> bool:
    """驗證工作日清單"""
    if not work_days:
        return False
    return all(day in WEEKDAYS for day in work_days)


def validate_pagination_params(skip: int, limit: int, max_limit: int = 1000) -> tuple:
    """驗證並修正分頁參數"""
    skip = max(skip or 0, 0)
    limit = min(max(limit or 1, 1), max_limit)
    return skip, limit


class DataValidator:
    """資料驗證器"""

    def validate_schedule_data(self, schedule_data: dict) -> tuple:
        """驗證班表資料"""
        errors = []

        if not validate_shift_type(schedule_data.get('shift_type')):
            errors.append("班別類型錯誤")

        for field in ('scheduled_time_in', 'scheduled_time_out'):
            if not isinstance(schedule_data.get(field), time):
                errors.append(f"{field} 必須是時間格式")

        if not validate_work_days(schedule_data.get('work_days') or []):
            errors.append("工作日必須是星期名稱清單")

        grace = schedule_data.get('grace_period_minutes')
        if grace is not None and not 0 <= grace <= 120:
            errors.append("寬限時間必須在 0-120 分鐘之間")

        effective_date = schedule_data.get('effective_date')
        end_date = schedule_data.get('end_date')
        if effective_date and end_date and end_date < effective_date:
            errors.append("結束日期不可早於生效日期")

        return len(errors) == 0, errors

    def validate_processing_range(self, start_date: date, end_date: date) -> None:
        """
        驗證處理日期範圍。

        Raises:
            ValidationError: 如果範圍無效
        """
        if not validate_date_range(start_date, end_date):
            raise ValidationError("Invalid date range: start date must not be after end date and the range must not exceed one year", "start_date")

    def validate_verification(self, status: Optional[str], secondary_status: Optional[str]) -> None:
        """
        驗證人工審核的狀態值。

        Raises:
            ValidationError: 如果狀態值未知
        """
        if status is not None and not validate_attendance_status(status):
            raise ValidationError(f"Unknown attendance status: {status}", "status")
        if secondary_status is not None and not validate_attendance_status(secondary_status):
            raise ValidationError(f"Unknown secondary status: {secondary_status}", "secondary_status")
