from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class ScanEvent(BaseModel):
    """單筆生物辨識打卡事件（匯入後不可變）"""
    employee_key: str
    device_user_id: Optional[str] = None
    raw_name: str
    timestamp: datetime
    source_device: Optional[str] = None
    site_id: Optional[int] = None
    user_id: Optional[int] = None
    record_id: Optional[int] = None

    class Config:
        frozen = True


class ParseResult(BaseModel):
    """打卡檔解析結果"""
    events: List[ScanEvent] = []
    total_lines: int = 0
    malformed_lines: int = 0
