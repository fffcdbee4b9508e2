from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime

from slotbook.core.database import get_db
from slotbook.schemas.catalog import ProfessionalResponse, ProfessionalWithSlots, SlotResponse
from slotbook.services.slot_service import SlotService


router = APIRouter()


# ============== Endpoints ==============

@router.get("/professionals", response_model=list[ProfessionalWithSlots])
async def list_professionals_with_available_slots(
    db: AsyncSession = Depends(get_db)
):
    """
    List bookable professionals together with their open slots.

    Professionals without a booking code or without open slots are left out.
    """
    return await SlotService(db).list_professionals_with_available_slots()


@router.get("/professionals/{user_code}", response_model=ProfessionalResponse)
async def get_professional_public(
    user_code: str,
    db: AsyncSession = Depends(get_db)
):
    """Get public professional info by booking code."""
    professional = await SlotService(db).get_professional_by_code(user_code)

    if not professional:
        raise HTTPException(status_code=404, detail=f"Professional not found: {user_code}")

    return professional


@router.get("/professionals/{user_code}/slots", response_model=list[SlotResponse])
async def get_available_slots(
    user_code: str,
    date_str: str | None = Query(None, alias="date", description="Date in YYYY-MM-DD format"),
    db: AsyncSession = Depends(get_db)
):
    """Get open slots for a professional, optionally for a single day."""

    slot_service = SlotService(db)
    professional = await slot_service.get_professional_by_code(user_code)

    if not professional:
        raise HTTPException(status_code=404, detail=f"Professional not found: {user_code}")

    target_date = None
    if date_str:
        try:
            target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")

    return await slot_service.get_available_slots(professional.id, target_date)
