from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tortoise.exceptions import IntegrityError, OperationalError

from models.lead import Lead
from models.facebook import FacebookForm
from helpers.credential_store import LEGACY_ID, resolve_credential
from helpers.errors import (
    NoActiveFormsError,
    NormalizationError,
    NotFoundError,
    StorageError,
    UpstreamAPIError,
)
from helpers.facebook_graph import graph

logger = logging.getLogger("lead_sync")

PAGE_LIMIT = int(os.getenv("LEAD_SYNC_PAGE_LIMIT", "100"))

# canonical lead attribute -> accepted (lowercased) upstream field names
FIELD_ALIASES: Dict[str, set] = {
    "full_name": {"full_name", "name", "full name"},
    "email": {"email", "email address"},
    "phone": {"phone", "phone number", "mobile", "contact"},
}

RAW_DATA_KEYS = {
    "platform": "platform",
    "campaign_name": "campaign_name",
    "adset_name": "adset_name",
    "ad_name": "ad_name",
    "ad_id": "ad_id",
}


def parse_graph_time(value: Any) -> Optional[datetime]:
    """
    Graph returns "2024-01-15T10:30:00+0000"; accept ISO variants and datetimes too.
    Naive values are treated as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        v = value.strip()
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        for parse in (datetime.fromisoformat, lambda s: datetime.strptime(s, "%Y-%m-%dT%H:%M:%S%z")):
            try:
                dt = parse(v)
            except ValueError:
                continue
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    raise ValueError(f"unrecognised timestamp {value!r}")


def _field_entries(field_data: Any) -> List[Dict[str, Any]]:
    if not isinstance(field_data, list):
        return []
    out = []
    for field in field_data:
        if not isinstance(field, dict):
            continue
        name = str(field.get("name") or "unknown").lower()
        values = field.get("values")
        value = values[0] if isinstance(values, list) and values else None
        out.append({"name": name, "value": value})
    return out


def normalize_lead(raw: Any, form: FacebookForm) -> Dict[str, Any]:
    """
    Turn one upstream lead into Lead column values.
    Malformed field entries are tolerated; a lead without identity or with an
    unreadable created_time raises NormalizationError.
    """
    if not isinstance(raw, dict):
        raise NormalizationError(f"lead payload is not an object: {raw!r}")
    lead_id = raw.get("id")
    if not lead_id:
        raise NormalizationError("lead payload has no id")

    try:
        created_time = parse_graph_time(raw.get("created_time")) or datetime.now(timezone.utc)
    except ValueError as e:
        raise NormalizationError(str(e))

    field_data = _field_entries(raw.get("field_data"))

    extracted: Dict[str, Any] = {key: None for key in FIELD_ALIASES}
    for entry in field_data:
        for key, aliases in FIELD_ALIASES.items():
            if extracted[key] is None and entry["name"] in aliases and entry["value"] is not None:
                extracted[key] = str(entry["value"]).strip()

    if extracted["email"]:
        extracted["email"] = extracted["email"].lower()

    return {
        "lead_id": str(lead_id),
        "form_id": form.form_id,
        "form_name": form.form_name,
        "page_id": form.page_id,
        "page_name": form.page_name,
        "full_name": extracted["full_name"],
        "email": extracted["email"],
        "phone": extracted["phone"],
        "created_time": created_time,
        "field_data": field_data,
        "raw_data": {key: raw.get(src) or "unknown" for key, src in RAW_DATA_KEYS.items()},
    }


async def watermark_for(user_id: int, form_id: str) -> Optional[datetime]:
    try:
        latest = await Lead.filter(user_id=user_id, form_id=form_id).order_by("-created_time").first()
    except OperationalError as e:
        raise StorageError(f"Could not read sync watermark for form {form_id}: {e}")
    return latest.created_time if latest else None


async def _target_forms(user_id: int, form_id: Optional[str], app_id: Optional[str]) -> List[FacebookForm]:
    if form_id:
        form = await FacebookForm.get_or_none(user_id=user_id, form_id=form_id)
        if not form:
            raise NotFoundError("Form not found")
        return [form]

    qs = FacebookForm.filter(user_id=user_id, is_active=True)
    if app_id and app_id != LEGACY_ID:
        qs = qs.filter(facebook_app_id=app_id)
    forms = await qs.order_by("created_at", "id")
    if not forms:
        raise NoActiveFormsError("No active forms found for this user")
    return forms


async def fetch_form_leads(form: FacebookForm, token: str, since: Optional[datetime]) -> tuple:
    """
    Collect every upstream page for a form. Returns (raw_leads, error_or_None).
    A failure on the first page propagates; a later failure keeps earlier pages.
    """
    leads: List[Any] = []
    pages_read = 0
    since_ts = int(since.timestamp()) if since else None
    try:
        async for batch in graph.iter_lead_pages(
            form.form_id, token, since=since_ts, limit=PAGE_LIMIT
        ):
            pages_read += 1
            leads.extend(batch)
    except UpstreamAPIError as e:
        if pages_read == 0:
            raise
        logger.warning("form %s: paging stopped after %s pages: %s", form.form_id, pages_read, e)
        return leads, str(e)
    return leads, None


async def upsert_lead(user_id: int, values: Dict[str, Any], now: datetime) -> None:
    defaults = {k: v for k, v in values.items() if k != "lead_id"}
    defaults["user_id"] = user_id
    defaults["last_synced_at"] = now
    try:
        await Lead.update_or_create(defaults=defaults, lead_id=values["lead_id"])
    except IntegrityError:
        # another sync inserted the same lead between our read and write
        await Lead.filter(lead_id=values["lead_id"]).update(**defaults)


async def sync(user_id: int, form_id: Optional[str] = None, app_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Pull leads newer than the stored watermark for one form or all active forms.

    Returns {"total_fetched", "inserted", "errors"}; per-lead and per-form
    problems land in `errors` without aborting the call.
    """
    credential = await resolve_credential(user_id, app_id)
    forms = await _target_forms(user_id, form_id, app_id)

    total_fetched = 0
    inserted = 0
    errors: List[Dict[str, Any]] = []

    for form in forms:
        since = await watermark_for(user_id, form.form_id)
        try:
            raw_leads, paging_error = await fetch_form_leads(form, credential.access_token, since)
        except UpstreamAPIError as e:
            if form_id:
                form.last_fetched_at = datetime.now(timezone.utc)
                await form.save(update_fields=["last_fetched_at"])
                raise
            logger.warning("user %s: form %s fetch failed: %s", user_id, form.form_id, e)
            errors.append({"form_id": form.form_id, "error": str(e)})
            raw_leads, paging_error = [], None

        if paging_error:
            errors.append({"form_id": form.form_id, "error": paging_error})

        normalized = []
        for raw in raw_leads:
            try:
                normalized.append(normalize_lead(raw, form))
            except NormalizationError as e:
                lead_ref = raw.get("id") if isinstance(raw, dict) else None
                logger.warning("form %s: dropped lead %s: %s", form.form_id, lead_ref, e)
                errors.append({"lead_id": lead_ref, "error": str(e)})

        total_fetched += len(normalized)
        now = datetime.now(timezone.utc)
        for values in normalized:
            try:
                await upsert_lead(user_id, values, now)
                inserted += 1
            except Exception as e:
                logger.exception("form %s: failed to store lead %s", form.form_id, values["lead_id"])
                errors.append({"lead_id": values["lead_id"], "error": str(e)})

        form.last_fetched_at = datetime.now(timezone.utc)
        await form.save(update_fields=["last_fetched_at"])

    logger.info(
        "user %s: synced %s forms; fetched=%s inserted=%s errors=%s",
        user_id, len(forms), total_fetched, inserted, len(errors),
    )
    return {"total_fetched": total_fetched, "inserted": inserted, "errors": errors}
