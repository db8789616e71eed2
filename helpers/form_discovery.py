import logging
from typing import Any, Dict, Iterable, List, Optional

from tortoise.exceptions import IntegrityError

from models.facebook import FacebookForm
from helpers.credential_store import resolve_credential
from helpers.errors import UpstreamAPIError
from helpers.facebook_graph import graph

logger = logging.getLogger("form_discovery")


async def list_pages(access_token: str) -> List[Dict[str, Any]]:
    """Pages reachable by a user token, each with its own page access token."""
    return await graph.get_user_pages(access_token)


async def list_forms(page: Dict[str, Any], fallback_token: Optional[str] = None) -> List[Dict[str, Any]]:
    token = page.get("access_token") or fallback_token
    return await graph.get_page_forms(page["id"], token)


async def list_page_ad_accounts(page_id: str, access_token: str) -> List[Dict[str, Any]]:
    return await graph.get_page_ad_accounts(page_id, access_token)


async def discover_and_save(
    user_id: int,
    credential_id: Optional[str] = None,
    page_ids: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Walk pages -> lead forms for one credential and insert forms not seen before.

    A failing page is recorded in `errors` and the remaining pages still run.
    Listing the pages themselves is not per-item work, so its failure propagates.
    """
    credential = await resolve_credential(user_id, credential_id)
    pages = await list_pages(credential.access_token)

    if page_ids:
        wanted = {str(p) for p in page_ids}
        pages = [p for p in pages if str(p.get("id")) in wanted]

    known = set(await FacebookForm.filter(user_id=user_id).values_list("form_id", flat=True))

    total_forms = 0
    new_forms = 0
    errors: List[Dict[str, Any]] = []

    for page in pages:
        page_id = page.get("id")
        page_name = page.get("name")
        page_token = page.get("access_token") or credential.access_token
        try:
            forms = await list_forms(page, fallback_token=credential.access_token)
            total_forms += len(forms)

            for f in forms:
                form_id = str(f.get("id") or "")
                if not form_id or form_id in known:
                    continue

                detail = await graph.get_form(form_id, page_token)
                detail_page = detail.get("page") or {}
                try:
                    await FacebookForm.create(
                        user_id=user_id,
                        form_id=form_id,
                        form_name=detail.get("name") or f.get("name"),
                        page_id=detail_page.get("id") or page_id,
                        page_name=detail_page.get("name") or page_name,
                        facebook_app=credential.app,
                        is_active=True,
                    )
                except IntegrityError:
                    # stored concurrently by another discovery or a manual add
                    logger.info("user %s: form %s already stored, skipping", user_id, form_id)
                    known.add(form_id)
                    continue
                known.add(form_id)
                new_forms += 1
        except UpstreamAPIError as e:
            logger.warning("user %s: discovery failed for page %s: %s", user_id, page_id, e)
            errors.append({"page_id": page_id, "page_name": page_name, "error": str(e)})

    logger.info(
        "user %s: discovery scanned %s pages, %s forms, %s new",
        user_id, len(pages), total_forms, new_forms,
    )
    return {"pages": len(pages), "forms": total_forms, "new_forms": new_forms, "errors": errors}
