import calendar
from datetime import datetime, date, time, timedelta
from typing import Iterator, Optional, Union
import pytz

from app.config import settings


def get_site_timezone(timezone_str: str = None) -> pytz.BaseTzInfo:
    """獲取站點時區"""
    try:
        return pytz.timezone(timezone_str or settings.TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone("Asia/Manila")


def utc_now() -> datetime:
    """獲取當前 UTC 時間"""
    return datetime.now(pytz.UTC)


def local_now(timezone_str: str = None) -> datetime:
    """獲取站點時區當前時間（不含時區資訊，與打卡機時間一致）"""
    return utc_now().astimezone(get_site_timezone(timezone_str)).replace(tzinfo=None)


def get_today(timezone_str: str = None) -> date:
    """獲取站點時區今天日期"""
    return local_now(timezone_str).date()


def format_datetime(dt: Optional[datetime], format_str: str = "%Y-%m-%d %H:%M") -> str:
    """格式化時間字符串，空值回傳空字串"""
    if dt is None:
        return ""
    return dt.strftime(format_str)


def format_time(value: Optional[Union[datetime, time]]) -> str:
    """格式化為 12 小時制時間字符串 (h:mm AM)"""
    if value is None:
        return ""
    return value.strftime("%I:%M %p").lstrip("0")


def daterange(start_date: date, end_date: date) -> Iterator[date]:
    """逐日列舉 [start_date, end_date]"""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def add_months(value: Union[datetime, date], months: int) -> Union[datetime, date]:
    """加上月份，月底日期自動對齊到目標月份的最後一天"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def truncate_to_minute(dt: datetime) -> datetime:
    """捨去秒數與微秒"""
    return dt.replace(second=0, microsecond=0)


def minutes_between(start_dt: datetime, end_dt: datetime) -> int:
    """兩個時間點之間的分鐘差（以分鐘為單位捨去秒數後計算，可為負數）"""
    delta = truncate_to_minute(end_dt) - truncate_to_minute(start_dt)
    return int(delta.total_seconds() // 60)


def day_name(value: date) -> str:
    """星期名稱（小寫英文，對應班表 work_days）"""
    return calendar.day_name[value.weekday()].lower()
