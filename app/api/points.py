"""
Attendance point API routes: listing, excusal, expiry and GBRO recalculation.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.point import AttendancePointResponse, ExcuseRequest, ExpireRequest, PointListResponse
from app.services.attendance_point_service import AttendancePointService
from app.utils.datetime_utils import get_today
from app.utils.validators import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/", response_model=PointListResponse, summary="取得出勤點數")
async def get_points(
    user_id: Optional[int] = Query(None, description="員工ID篩選"),
    start_date: Optional[date] = Query(None, description="開始日期"),
    end_date: Optional[date] = Query(None, description="結束日期"),
    active_only: bool = Query(False, description="只列出有效點數"),
    db: Session = Depends(get_db)
):
    """取得點數列表與有效點數總和（未豁免且未到期）。"""
    try:
        points = AttendancePointService(db).list_points(user_id, start_date, end_date, active_only)
        active_total = sum((Decimal(point.points) for point in points if point.is_active), Decimal("0"))

        return PointListResponse(
            points=[AttendancePointResponse.from_orm(point) for point in points],
            total=len(points),
            active_total=active_total
        )

    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get attendance points"
        )


@router.post("/{point_id}/excuse", response_model=AttendancePointResponse, summary="豁免點數")
async def excuse_point(
    point_id: int,
    excuse_data: ExcuseRequest,
    db: Session = Depends(get_db)
):
    """
    豁免一筆點數。

    - 必須提供原因與執行者
    - 豁免後重新計算該員工的 GBRO
    """
    try:
        point = AttendancePointService(db).excuse(point_id, excuse_data.reason, excuse_data.actor_id)
        return AttendancePointResponse.from_orm(point)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to excuse attendance point"
        )


@router.post("/expire", response_model=dict, summary="處理到期點數")
async def expire_points(
    expire_data: ExpireRequest,
    db: Session = Depends(get_db)
):
    """以指定日期（預設今天）處理 SRO 到期與 GBRO 滾動。"""
    try:
        as_of = expire_data.as_of or get_today()
        expired = AttendancePointService(db).expire_due_points(as_of)
        return {"success": True, "as_of": as_of.isoformat(), "expired": expired}

    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to expire attendance points"
        )


@router.post("/recalculate/{user_id}", response_model=dict, summary="重新計算員工 GBRO")
async def recalculate_points(
    user_id: int,
    db: Session = Depends(get_db)
):
    """依目前的點數與違規日期重新推算該員工的 GBRO。"""
    try:
        if not db.query(User).filter(User.id == user_id).first():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        rolled_off = AttendancePointService(db).cascade_recalculate(user_id)
        db.commit()
        return {"success": True, "user_id": user_id, "rolled_off": rolled_off}

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to recalculate points for user {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to recalculate attendance points"
        )
