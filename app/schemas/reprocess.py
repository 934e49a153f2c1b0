from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import date


class ReprocessRequest(BaseModel):
    start_date: date
    end_date: date
    user_ids: Optional[List[int]] = None
    delete_existing: bool = True


class ReprocessPreview(BaseModel):
    employees: int = 0
    biometric_records: int = 0
    existing_attendances: int = 0
    verified_attendances: int = 0


class ReprocessResult(BaseModel):
    processed: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = []
    details: List[Dict[str, Any]] = []
    message: str = ""


class JobProgress(BaseModel):
    job_id: str
    percent: int = 0
    status: str = "queued"
    finished: bool = False
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    download_url: Optional[str] = None


class JobAccepted(BaseModel):
    job_id: str
    progress_url: str
