import csv
import io
from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from tortoise.expressions import Q

from models.auth import User
from models.lead import Lead, LeadStatus
from helpers.lead_sync import sync
from helpers.token_helper import get_current_user

router = APIRouter(prefix="/leads", tags=["leads"])

CSV_HEADERS = [
    "Lead ID", "Form ID", "Form Name", "Page ID", "Page Name", "Full Name", "Email",
    "Phone", "Created Time", "Status", "Campaign", "Ad Set", "Ad", "Notes",
]


class FetchLeadsPayload(BaseModel):
    form_id: Optional[str] = None
    app_id: Optional[str] = None


class UpdateLeadPayload(BaseModel):
    status: Optional[LeadStatus] = None
    notes: Optional[str] = None


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date '{value}', expected YYYY-MM-DD")


def lead_to_dict(lead: Lead) -> dict:
    return {
        "id": lead.id,
        "lead_id": lead.lead_id,
        "form_id": lead.form_id,
        "form_name": lead.form_name,
        "page_id": lead.page_id,
        "page_name": lead.page_name,
        "full_name": lead.full_name,
        "email": lead.email,
        "phone": lead.phone,
        "created_time": lead.created_time.isoformat() if lead.created_time else None,
        "field_data": lead.field_data or [],
        "raw_data": lead.raw_data or {},
        "status": lead.status.value if isinstance(lead.status, LeadStatus) else lead.status,
        "notes": lead.notes,
        "last_synced_at": lead.last_synced_at.isoformat() if lead.last_synced_at else None,
    }


def _filtered(user: User, form_id=None, page_id=None, status=None, start_date=None, end_date=None, search=None):
    qset = Lead.filter(user_id=user.id)
    if form_id:
        qset = qset.filter(form_id=form_id)
    if page_id:
        qset = qset.filter(page_id=page_id)
    if status:
        qset = qset.filter(status=status)

    df = _parse_date(start_date)
    dt = _parse_date(end_date)
    if df:
        qset = qset.filter(created_time__gte=datetime.combine(df, time.min, tzinfo=timezone.utc))
    if dt:
        qset = qset.filter(created_time__lte=datetime.combine(dt, time.max, tzinfo=timezone.utc))

    if search:
        s = search.strip()
        qset = qset.filter(
            Q(full_name__icontains=s) |
            Q(email__icontains=s) |
            Q(phone__icontains=s)
        )
    return qset


async def _get_lead(user: User, id: str) -> Lead:
    lead = await Lead.get_or_none(user_id=user.id, lead_id=id)
    if not lead and id.isdigit() and len(id) < 10:
        lead = await Lead.get_or_none(user_id=user.id, id=int(id))
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


@router.get("")
async def list_leads(
    user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    form_id: Optional[str] = Query(None),
    page_id: Optional[str] = Query(None),
    status: Optional[LeadStatus] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD (inclusive)"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD (inclusive)"),
    search: Optional[str] = Query(None, description="Search name/email/phone"),
):
    qset = _filtered(user, form_id, page_id, status, start_date, end_date, search)
    total = await qset.count()

    offset = (page - 1) * limit
    rows = await qset.order_by("-created_time", "-id").offset(offset).limit(limit)

    return {
        "success": True,
        "data": {
            "leads": [lead_to_dict(x) for x in rows],
            "total": total,
            "total_pages": (total + limit - 1) // limit,
            "current_page": page,
        },
    }


@router.post("/fetch")
async def fetch_leads(payload: FetchLeadsPayload, user: User = Depends(get_current_user)):
    result = await sync(user.id, form_id=payload.form_id, app_id=payload.app_id)
    return {
        "success": True,
        "message": f"Fetched {result['total_fetched']} leads, saved {result['inserted']}",
        "data": result,
    }


@router.get("/export")
async def export_leads(
    user: User = Depends(get_current_user),
    form_id: Optional[str] = Query(None),
    page_id: Optional[str] = Query(None),
    status: Optional[LeadStatus] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
):
    leads = await _filtered(user, form_id, page_id, status, start_date, end_date, search).order_by("-created_time", "-id")
    if not leads:
        raise HTTPException(status_code=404, detail="No leads found to export")

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for lead in leads:
        raw = lead.raw_data or {}
        writer.writerow([
            lead.lead_id,
            lead.form_id,
            lead.form_name or "",
            lead.page_id or "",
            lead.page_name or "",
            lead.full_name or "",
            lead.email or "",
            lead.phone or "",
            lead.created_time.isoformat() if lead.created_time else "",
            lead.status.value if isinstance(lead.status, LeadStatus) else lead.status,
            raw.get("campaign_name", ""),
            raw.get("adset_name", ""),
            raw.get("ad_name", ""),
            lead.notes or "",
        ])

    buf.seek(0)
    filename = f"leads-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return StreamingResponse(
        io.BytesIO(buf.read().encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{id}")
async def get_lead(id: str, user: User = Depends(get_current_user)):
    lead = await _get_lead(user, id)
    return {"success": True, "data": lead_to_dict(lead)}


@router.put("/{id}")
async def update_lead(id: str, payload: UpdateLeadPayload, user: User = Depends(get_current_user)):
    lead = await _get_lead(user, id)
    if payload.status is not None:
        lead.status = payload.status
    if payload.notes is not None:
        lead.notes = payload.notes
    await lead.save(update_fields=["status", "notes"])
    return {"success": True, "data": lead_to_dict(lead)}
