"""
Reprocessing API routes: preview, synchronous reprocessing and background jobs.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db, get_session_factory
from app.schemas.reprocess import JobAccepted, JobProgress, ReprocessPreview, ReprocessRequest, ReprocessResult
from app.services.attendance_processor import AttendanceProcessor
from app.services.job_progress import progress_store, run_reprocess_job
from app.utils.validators import ValidationError

router = APIRouter(prefix="/reprocessing", tags=["reprocessing"])


@router.post("/preview", response_model=ReprocessPreview, summary="預覽重新處理範圍")
async def preview_reprocessing(
    request: ReprocessRequest,
    db: Session = Depends(get_db)
):
    """回傳會受影響的員工數、打卡紀錄數與既有出勤數（含已審核數）。"""
    try:
        return AttendanceProcessor(db).preview_reprocess(request.start_date, request.end_date, request.user_ids)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to preview reprocessing"
        )


@router.post("/", response_model=ReprocessResult, summary="重新處理出勤")
async def reprocess_attendance(
    request: ReprocessRequest,
    db: Session = Depends(get_db)
):
    """
    同步重新處理日期範圍內的出勤。

    - 參數在處理前驗證，未知的員工 ID 直接拒絕
    - 審核過的紀錄不會被覆寫
    """
    try:
        return AttendanceProcessor(db).reprocess(
            request.start_date, request.end_date, request.user_ids, request.delete_existing
        )

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reprocess attendance"
        )


@router.post("/jobs", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED, summary="建立背景重新處理工作")
async def start_reprocessing_job(
    request: ReprocessRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory)
):
    """驗證參數後排入背景執行，回傳可查詢進度的 job id。"""
    try:
        AttendanceProcessor(db).validate_reprocess_request(request.start_date, request.end_date, request.user_ids)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)

    job_id = progress_store.create()
    background_tasks.add_task(
        run_reprocess_job,
        job_id,
        request.start_date,
        request.end_date,
        request.user_ids,
        request.delete_existing,
        progress_store,
        session_factory,
    )
    return JobAccepted(job_id=job_id, progress_url=f"{settings.API_PREFIX}/reprocessing/jobs/{job_id}")


@router.get("/jobs/{job_id}", response_model=JobProgress, summary="查詢背景工作進度")
async def get_reprocessing_job(job_id: str):
    """查詢背景工作進度；過期或不存在的 job 回傳 404。"""
    progress = progress_store.get(job_id)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return progress
