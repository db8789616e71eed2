from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from models.auth import User
from models.facebook import FacebookForm
from helpers.credential_store import LEGACY_ID, resolve_credential
from helpers.token_helper import get_current_user

router = APIRouter(prefix="/forms", tags=["forms"])


class AddFormPayload(BaseModel):
    form_id: str = Field(..., min_length=1)
    form_name: Optional[str] = None
    page_id: Optional[str] = None
    page_name: Optional[str] = None
    facebook_app_id: Optional[str] = None


class UpdateFormPayload(BaseModel):
    form_name: Optional[str] = None
    is_active: Optional[bool] = None


def form_to_dict(f: FacebookForm) -> dict:
    return {
        "id": f.id,
        "form_id": f.form_id,
        "form_name": f.form_name,
        "page_id": f.page_id,
        "page_name": f.page_name,
        "facebook_app_id": str(f.facebook_app_id) if f.facebook_app_id else None,
        "last_fetched_at": f.last_fetched_at.isoformat() if f.last_fetched_at else None,
        "is_active": f.is_active,
        "created_at": f.created_at.isoformat() if f.created_at else None,
    }


@router.post("", status_code=201)
async def add_form(payload: AddFormPayload, user: User = Depends(get_current_user)):
    form_id = payload.form_id.strip()
    if await FacebookForm.filter(user_id=user.id, form_id=form_id).exists():
        raise HTTPException(status_code=400, detail="Form already exists")

    app = None
    if payload.facebook_app_id and payload.facebook_app_id != LEGACY_ID:
        app = (await resolve_credential(user.id, payload.facebook_app_id)).app

    form = await FacebookForm.create(
        user_id=user.id,
        form_id=form_id,
        form_name=payload.form_name,
        page_id=payload.page_id,
        page_name=payload.page_name,
        facebook_app=app,
    )
    return {"success": True, "data": form_to_dict(form)}


@router.get("")
async def list_forms(user: User = Depends(get_current_user)):
    forms = await FacebookForm.filter(user_id=user.id).order_by("-created_at", "-id")
    return {"success": True, "data": [form_to_dict(f) for f in forms]}


@router.delete("/{id}")
async def delete_form(id: int, user: User = Depends(get_current_user)):
    deleted = await FacebookForm.filter(id=id, user_id=user.id).delete()
    if not deleted:
        raise HTTPException(status_code=404, detail="Form not found")
    return {"success": True, "message": "Form deleted successfully"}


@router.put("/{id}")
async def update_form(id: int, payload: UpdateFormPayload, user: User = Depends(get_current_user)):
    form = await FacebookForm.get_or_none(id=id, user_id=user.id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")

    if payload.form_name is not None:
        form.form_name = payload.form_name
    if payload.is_active is not None:
        form.is_active = payload.is_active
    await form.save()
    return {"success": True, "data": form_to_dict(form)}
