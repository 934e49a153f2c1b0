"""
Employee schedule API routes.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.schedule import ScheduleCreate, ScheduleResponse
from app.services.schedule_service import ScheduleService
from app.utils.validators import ValidationError

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post("/", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED, summary="建立班表版本")
async def create_schedule(
    schedule_data: ScheduleCreate,
    db: Session = Depends(get_db)
):
    """
    建立班表版本。

    - 啟用中的新版本會停用同一員工的舊版本
    - 舊版本在新版本生效前一天結束
    """
    try:
        schedule = ScheduleService(db).create_schedule(schedule_data)
        return ScheduleResponse.from_orm(schedule)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create schedule"
        )


@router.get("/user/{user_id}", response_model=List[ScheduleResponse], summary="取得員工班表版本")
async def get_user_schedules(
    user_id: int,
    db: Session = Depends(get_db)
):
    try:
        return [ScheduleResponse.from_orm(schedule) for schedule in ScheduleService(db).list_schedules(user_id)]

    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get schedules"
        )


@router.post("/{schedule_id}/activate", response_model=ScheduleResponse, summary="啟用班表版本")
async def activate_schedule(
    schedule_id: int,
    db: Session = Depends(get_db)
):
    try:
        return ScheduleResponse.from_orm(ScheduleService(db).activate_schedule(schedule_id))

    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate schedule"
        )
