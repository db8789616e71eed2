import csv
import io
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from models.auth import User
from helpers.credential_store import resolve_credential
from helpers.facebook_graph import graph
from helpers.insights_cache import flatten_insights_rows, get_insights
from helpers.token_helper import get_current_user

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/insights")
async def insights(
    ad_account_id: str = Query(..., min_length=1),
    date_preset: str = Query("last_7d"),
    breakdown: Optional[str] = Query(None),
    force_refresh: bool = Query(False),
    app_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
):
    credential = await resolve_credential(user.id, app_id)
    data = await get_insights(
        user.id,
        credential.access_token,
        ad_account_id,
        date_preset,
        breakdown=breakdown,
        force_refresh=force_refresh,
    )
    return {"success": True, "data": data}


@router.get("/ad-accounts")
async def ad_accounts(app_id: Optional[str] = Query(None), user: User = Depends(get_current_user)):
    credential = await resolve_credential(user.id, app_id)
    return {"success": True, "data": await graph.get_ad_accounts(credential.access_token)}


@router.get("/export")
async def export_insights(
    ad_account_id: str = Query(..., min_length=1),
    date_preset: str = Query("last_7d"),
    breakdown: Optional[str] = Query(None),
    app_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
):
    credential = await resolve_credential(user.id, app_id)
    data = await get_insights(user.id, credential.access_token, ad_account_id, date_preset, breakdown=breakdown)
    rows = flatten_insights_rows((data or {}).get("data") or [])

    columns = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, restval="")
    if columns:
        writer.writeheader()
        writer.writerows(rows)

    buf.seek(0)
    filename = f"insights-{ad_account_id}-{date_preset}.csv"
    return StreamingResponse(
        io.BytesIO(buf.read().encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
