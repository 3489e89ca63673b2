from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from config import Holiday, LeaveQuotas
from database import Database, get_db
from dependencies import require_role
from model import UserRole
from schemas import ErrorResponse, HolidayCreate

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_role(UserRole.hr))]
)


@router.get("/quotas", response_model=LeaveQuotas)
def get_quotas(db: Database = Depends(get_db)):
    return db.leave_quotas


@router.put("/quotas", response_model=LeaveQuotas)
def update_quotas(quotas: LeaveQuotas, db: Database = Depends(get_db)):
    db.leave_quotas = quotas
    return db.leave_quotas


@router.get("/holidays", response_model=List[Holiday])
def get_holidays(db: Database = Depends(get_db)):
    return sorted(db.holidays, key=lambda h: h.date)


@router.post("/holidays", response_model=Holiday, status_code=status.HTTP_201_CREATED)
def add_holiday(holiday: HolidayCreate, db: Database = Depends(get_db)):
    next_id = max((h.id for h in db.holidays), default=0) + 1
    new_holiday = Holiday(id=next_id, **holiday.model_dump())
    db.replace_holidays([*db.holidays, new_holiday])
    return new_holiday


@router.delete("/holidays/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday(holiday_id: int, db: Database = Depends(get_db)):
    if not any(h.id == holiday_id for h in db.holidays):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ErrorResponse(code=404, detail="Holiday not found").model_dump(mode="json"),
        )
    db.replace_holidays(h for h in db.holidays if h.id != holiday_id)
