"""
Parser for tab-delimited biometric device scan logs.

Expected columns: No, DevNo, UserId, Name, Mode, DateTime (Y-m-d H:i:s).
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union

from app.schemas.scan import ScanEvent, ParseResult
from app.services.name_normalizer import normalize_name

logger = logging.getLogger(__name__)

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
_SIX_COLUMNS = re.compile(r'^(\S+)\t+(\S+)\t+(\S+)\t+(.+?)\t+(\S+)\t+(.+)$')
_DATETIME_CHARS = re.compile(r'[^\d\-\s:]')


class ScanLogParser:
    """打卡機匯出檔解析器"""

    def __init__(self, site_id: Optional[int] = None):
        self.site_id = site_id

    @staticmethod
    def decode(content: Union[bytes, str]) -> str:
        """以 UTF-8 解碼，失敗時改用 Windows-1252，並移除控制字元"""
        if isinstance(content, bytes):
            try:
                text = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                text = content.decode("cp1252", errors="replace")
        else:
            text = content

        text = text.replace("\r\n", "\n").replace("\r", "\n")
        return _CONTROL_CHARS.sub("", text)

    def parse(self, content: Union[bytes, str]) -> ParseResult:
        """
        解析整份打卡檔。

        第一行為標題列，略過不處理。無法解析的行會被計數並略過，不會中斷整批處理。

        Args:
            content: 檔案內容（bytes 或 str）

        Returns:
            ParseResult，包含打卡事件與錯誤行數
        """
        lines = self.decode(content).split("\n")
        events: List[ScanEvent] = []
        total_lines = 0
        malformed = 0

        for line_number, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue

            total_lines += 1
            event = self.parse_line(line)
            if event is None:
                malformed += 1
                logger.warning(f"Skipping malformed scan log line {line_number}: {line[:80]!r}")
                continue

            events.append(event)

        logger.info(f"Parsed scan log: {len(events)} events, {malformed} malformed of {total_lines} lines")
        return ParseResult(events=events, total_lines=total_lines, malformed_lines=malformed)

    def parse_line(self, line: str) -> Optional[ScanEvent]:
        """解析單行，格式不符時回傳 None"""
        parts = [part.strip() for part in re.split(r'\t+', line.strip())]

        if len(parts) < 6:
            match = _SIX_COLUMNS.match(line.strip())
            if match:
                parts = [part.strip() for part in match.groups()]
            else:
                # 部分機型以多個空白分隔欄位
                parts = [part.strip() for part in re.split(r'\s{2,}', line.strip())]

        if len(parts) < 6:
            return None

        device_no, device_user_id, name = parts[1], parts[2], parts[3]
        # 日期時間可能被拆到最後幾欄
        timestamp = self.parse_datetime(" ".join(parts[5:]))

        if not name or timestamp is None:
            return None

        return ScanEvent(
            employee_key=normalize_name(name),
            device_user_id=device_user_id,
            raw_name=re.sub(r'\s+', ' ', name),
            timestamp=timestamp,
            source_device=device_no,
            site_id=self.site_id,
        )

    @staticmethod
    def parse_datetime(value: str) -> Optional[datetime]:
        """解析日期時間，容許重複空白與尾端雜訊"""
        cleaned = re.sub(r'\s+', ' ', value.strip())
        cleaned = _DATETIME_CHARS.sub('', cleaned).strip()
        cleaned = re.sub(r'\s+', ' ', cleaned)[:19]

        try:
            return datetime.strptime(cleaned, DATETIME_FORMAT)
        except ValueError:
            return None


def filter_by_date_range(events: Iterable[ScanEvent], date_from: date, date_to: date) -> List[ScanEvent]:
    """
    保留 [date_from, date_to + 1 天] 內的打卡事件。

    多保留一天是為了包含夜班在隔天早上的下班打卡。
    """
    last_day = date_to + timedelta(days=1)
    return [event for event in events if date_from <= event.timestamp.date() <= last_day]
