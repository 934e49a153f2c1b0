"""
Progress tracking and runners for long-running background jobs.

Jobs write progress; the HTTP layer only reads it. There is no cancellation:
a failed job sets its error flag, a stuck job simply stops updating.
"""

import logging
import threading
import time
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from app.config import settings
from app.database import SessionLocal
from app.schemas.reprocess import JobProgress
from app.services.attendance_processor import AttendanceProcessor
from app.services.export_service import ExportService

logger = logging.getLogger(__name__)


class JobProgressStore:
    """以 job id 為鍵的進度快取，逾時自動清除"""

    def __init__(self, ttl: int = None):
        self.ttl = settings.JOB_PROGRESS_TTL if ttl is None else ttl
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._files: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def create(self) -> str:
        job_id = uuid.uuid4().hex
        self.update(job_id, percent=0, status="queued")
        return job_id

    def update(self, job_id: str, **fields) -> None:
        with self._lock:
            entry = self._entries.get(job_id, {"job_id": job_id})
            entry.update(fields)
            entry["updated_at"] = time.monotonic()
            self._entries[job_id] = entry

    def get(self, job_id: str) -> Optional[JobProgress]:
        with self._lock:
            self._purge()
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            return JobProgress(**{key: value for key, value in entry.items() if key != "updated_at"})

    def store_file(self, job_id: str, content: bytes, filename: str, content_type: str) -> None:
        with self._lock:
            self._files[job_id] = (content, filename, content_type)

    def get_file(self, job_id: str) -> Optional[tuple]:
        with self._lock:
            self._purge()
            return self._files.get(job_id)

    def _purge(self) -> None:
        now = time.monotonic()
        expired = [job_id for job_id, entry in self._entries.items() if now - entry["updated_at"] > self.ttl]
        for job_id in expired:
            self._entries.pop(job_id, None)
            self._files.pop(job_id, None)


progress_store = JobProgressStore()


def run_reprocess_job(job_id: str, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                      delete_existing: bool = True, store: JobProgressStore = None, session_factory=None) -> None:
    """背景重新處理出勤"""
    store = store or progress_store
    db = (session_factory or SessionLocal)()
    try:
        store.update(job_id, status="running", percent=0)
        processor = AttendanceProcessor(db)
        result = processor.reprocess(
            start_date, end_date, user_ids, delete_existing,
            progress=lambda percent, message: store.update(job_id, percent=percent, status=message),
        )
        store.update(job_id, percent=100, status=result.message, finished=True, result=result.dict())

    except Exception as e:
        logger.error(f"Reprocess job {job_id} failed: {str(e)}", exc_info=True)
        store.update(job_id, status="failed", finished=True, error="Reprocessing failed")
    finally:
        db.close()


def run_export_job(job_id: str, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                   site_id: Optional[int] = None, store: JobProgressStore = None, session_factory=None) -> None:
    """背景匯出出勤，完成後提供下載網址"""
    store = store or progress_store
    db = (session_factory or SessionLocal)()
    try:
        store.update(job_id, status="running", percent=0)
        service = ExportService(db)
        content, filename, content_type = service.export_attendance(
            start_date, end_date, user_ids, site_id,
            progress=lambda percent, message: store.update(job_id, percent=percent, status=message),
        )
        store.store_file(job_id, content, filename, content_type)
        store.update(
            job_id,
            percent=100,
            status="Export ready",
            finished=True,
            download_url=f"{settings.API_PREFIX}/exports/jobs/{job_id}/download",
        )

    except Exception as e:
        logger.error(f"Export job {job_id} failed: {str(e)}", exc_info=True)
        store.update(job_id, status="failed", finished=True, error="Export failed")
    finally:
        db.close()
