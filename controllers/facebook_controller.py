from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from models.auth import User
from models.facebook import FacebookForm, TokenType
from helpers.credential_store import (
    add_or_update_credential,
    delete_credential,
    list_credentials,
    resolve_credential,
    serialize_app,
)
from helpers.form_discovery import discover_and_save, list_forms, list_page_ad_accounts, list_pages
from helpers.lead_sync import sync
from helpers.token_exchange import exchange
from helpers.token_helper import get_current_user

logger = logging.getLogger("facebook_controller")

router = APIRouter(prefix="/facebook", tags=["facebook"])


class SaveTokenPayload(BaseModel):
    access_token: str = Field(..., min_length=1)
    app_id: Optional[str] = None
    app_name: Optional[str] = None
    token_type: Optional[TokenType] = None
    expires_at: Optional[datetime] = None


class ExchangeTokenPayload(BaseModel):
    short_lived_token: Optional[str] = None
    credential_id: Optional[str] = None
    app_name: Optional[str] = None


class AppCredentialsPayload(BaseModel):
    facebook_app_id: str = Field(..., min_length=1)
    facebook_app_secret: str = Field(..., min_length=1)


class DiscoverPayload(BaseModel):
    app_id: Optional[str] = None
    page_ids: Optional[List[str]] = None


def _page_summary(page: dict) -> dict:
    return {"id": page.get("id"), "name": page.get("name"), "category": page.get("category")}


async def _find_page(access_token: str, page_id: str) -> dict:
    for page in await list_pages(access_token):
        if str(page.get("id")) == str(page_id):
            return page
    raise HTTPException(status_code=404, detail="Page not found for this access token")

# ---------- tokens / apps ----------

@router.post("/token")
async def save_token(payload: SaveTokenPayload, user: User = Depends(get_current_user)):
    app = await add_or_update_credential(
        user.id,
        access_token=payload.access_token.strip(),
        app_id=payload.app_id,
        app_name=payload.app_name,
        token_type=payload.token_type.value if payload.token_type else None,
        expires_at=payload.expires_at,
    )
    return {"success": True, "message": "Access token saved", "data": serialize_app(app)}


@router.post("/token/exchange")
async def exchange_token(payload: ExchangeTokenPayload, user: User = Depends(get_current_user)):
    """
    Upgrade a token to long-lived. With no explicit token the stored token of
    `credential_id` (or the default credential) is exchanged and updated in place.
    """
    existing_app = None
    short_token = (payload.short_lived_token or "").strip()
    if not short_token:
        resolved = await resolve_credential(user.id, payload.credential_id)
        short_token = resolved.access_token
        existing_app = resolved.app
    elif payload.credential_id:
        existing_app = (await resolve_credential(user.id, payload.credential_id)).app

    result = await exchange(short_token, user.id)
    app = await add_or_update_credential(
        user.id,
        access_token=result["access_token"],
        app_id=existing_app.app_id if existing_app else None,
        app_name=payload.app_name,
        token_type=result["token_type"],
        expires_at=result["expires_at"],
    )
    return {
        "success": True,
        "message": "Token exchanged for a long-lived token",
        "data": serialize_app(app),
    }


@router.get("/apps")
async def get_apps(user: User = Depends(get_current_user)):
    return {"success": True, "data": await list_credentials(user.id)}


@router.delete("/apps/{credential_id}")
async def remove_app(credential_id: str, user: User = Depends(get_current_user)):
    found = await delete_credential(user.id, credential_id)
    if not found:
        raise HTTPException(status_code=404, detail="Facebook app not found")
    return {"success": True, "message": "Facebook app deleted"}


@router.get("/app-credentials")
async def get_app_credentials(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "data": {
            "facebook_app_id": user.facebook_app_id,
            "has_app_secret": bool(user.facebook_app_secret),
        },
    }


@router.post("/app-credentials")
async def save_app_credentials(payload: AppCredentialsPayload, user: User = Depends(get_current_user)):
    user.facebook_app_id = payload.facebook_app_id.strip()
    user.facebook_app_secret = payload.facebook_app_secret.strip()
    await user.save(update_fields=["facebook_app_id", "facebook_app_secret"])
    logger.info("user %s: saved app credentials for app %s", user.id, user.facebook_app_id)
    return {"success": True, "message": "App credentials saved"}

# ---------- pages / forms / ad accounts ----------

@router.get("/pages")
async def get_pages(app_id: Optional[str] = Query(None), user: User = Depends(get_current_user)):
    credential = await resolve_credential(user.id, app_id)
    pages = await list_pages(credential.access_token)
    return {"success": True, "data": [_page_summary(p) for p in pages]}


@router.get("/pages/{page_id}/forms")
async def get_page_forms(page_id: str, app_id: Optional[str] = Query(None), user: User = Depends(get_current_user)):
    credential = await resolve_credential(user.id, app_id)
    page = await _find_page(credential.access_token, page_id)
    forms = await list_forms(page, fallback_token=credential.access_token)
    return {"success": True, "data": forms}


@router.get("/pages/{page_id}/adaccounts")
async def get_page_adaccounts(page_id: str, app_id: Optional[str] = Query(None), user: User = Depends(get_current_user)):
    credential = await resolve_credential(user.id, app_id)
    accounts = await list_page_ad_accounts(page_id, credential.access_token)
    return {"success": True, "data": accounts}


@router.post("/discover")
async def discover_forms(payload: DiscoverPayload, user: User = Depends(get_current_user)):
    result = await discover_and_save(user.id, payload.app_id, page_ids=payload.page_ids)
    return {
        "success": True,
        "message": f"Found {result['forms']} forms on {result['pages']} pages, {result['new_forms']} new",
        "data": result,
    }


@router.post("/forms/{form_id}/sync")
async def sync_form(form_id: str, app_id: Optional[str] = Query(None), user: User = Depends(get_current_user)):
    if not app_id:
        form = await FacebookForm.get_or_none(user_id=user.id, form_id=form_id)
        if form and form.facebook_app_id:
            app_id = str(form.facebook_app_id)
    result = await sync(user.id, form_id=form_id, app_id=app_id)
    return {"success": True, "data": result}
