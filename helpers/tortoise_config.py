import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from tortoise import Tortoise

load_dotenv()

MODEL_MODULES = [
    "models.auth",
    "models.facebook",
    "models.lead",
    "models.analytics",
]

TORTOISE_CONFIG = {
    "connections": {
        "default": os.getenv("DATABASE_URL", "sqlite://db.sqlite3")
    },
    "apps": {
        "models": {
            "models": MODEL_MODULES + ["aerich.models"],
            "default_connection": "default",
        }
    },
    "use_tz": True,
    "timezone": "UTC",
}

GENERATE_SCHEMAS = os.getenv("DB_GENERATE_SCHEMAS", "false").lower() in ("1", "true", "yes", "on")


@asynccontextmanager
async def lifespan(_):
    await Tortoise.init(config=TORTOISE_CONFIG)
    if GENERATE_SCHEMAS:
        await Tortoise.generate_schemas(safe=True)
    try:
        yield
    finally:
        await Tortoise.close_connections()
