"""
Link forms that have no app credential to their owner's first credential.

Forms created before multi-app support (or whose credential was deleted)
are synced with the default credential; this pins them explicitly.

    python -m scripts.migrate_forms
"""
import logging

from tortoise import Tortoise, run_async

from models.facebook import FacebookApp, FacebookForm
from helpers.tortoise_config import TORTOISE_CONFIG

logger = logging.getLogger("migrate_forms")


async def assign_missing_apps() -> int:
    updated = 0
    user_ids = await FacebookForm.filter(facebook_app_id__isnull=True).distinct().values_list("user_id", flat=True)
    for user_id in user_ids:
        app = await FacebookApp.filter(user_id=user_id).order_by("created_at").first()
        if not app:
            logger.info("user %s has no app credentials; skipping", user_id)
            continue
        count = await FacebookForm.filter(user_id=user_id, facebook_app_id__isnull=True).update(facebook_app_id=app.id)
        logger.info("user %s: assigned %s forms to app %s (%s)", user_id, count, app.id, app.app_name)
        updated += count
    return updated


async def main():
    await Tortoise.init(config=TORTOISE_CONFIG)
    updated = await assign_missing_apps()
    logger.info("migration finished; %s forms updated", updated)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_async(main())
