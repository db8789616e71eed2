from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "users" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "name" VARCHAR(255) NOT NULL,
    "email" VARCHAR(255) NOT NULL UNIQUE,
    "password" VARCHAR(255) NOT NULL,
    "access_token" TEXT,
    "facebook_app_id" VARCHAR(64),
    "facebook_app_secret" VARCHAR(255),
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS "facebook_apps" (
    "id" UUID NOT NULL PRIMARY KEY,
    "app_id" VARCHAR(64) NOT NULL,
    "app_name" VARCHAR(255) NOT NULL,
    "access_token" TEXT NOT NULL,
    "token_type" VARCHAR(16) NOT NULL  DEFAULT 'short_lived',
    "expires_at" TIMESTAMPTZ,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "user_id" INT NOT NULL REFERENCES "users" ("id") ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS "idx_facebook_ap_app_id_3b1f0e" ON "facebook_apps" ("app_id");
COMMENT ON COLUMN "facebook_apps"."token_type" IS 'SHORT_LIVED: short_lived\nLONG_LIVED: long_lived';
CREATE TABLE IF NOT EXISTS "facebook_forms" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "form_id" VARCHAR(64) NOT NULL,
    "form_name" VARCHAR(255),
    "page_id" VARCHAR(64),
    "page_name" VARCHAR(255),
    "last_fetched_at" TIMESTAMPTZ,
    "is_active" BOOL NOT NULL  DEFAULT True,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "facebook_app_id" UUID REFERENCES "facebook_apps" ("id") ON DELETE SET NULL,
    "user_id" INT NOT NULL REFERENCES "users" ("id") ON DELETE CASCADE,
    CONSTRAINT "uid_facebook_fo_user_id_8c2d41" UNIQUE ("user_id", "form_id")
);
CREATE INDEX IF NOT EXISTS "idx_facebook_fo_page_id_5e7a90" ON "facebook_forms" ("page_id");
CREATE TABLE IF NOT EXISTS "leads" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "form_id" VARCHAR(64) NOT NULL,
    "form_name" VARCHAR(255),
    "page_id" VARCHAR(64),
    "page_name" VARCHAR(255),
    "lead_id" VARCHAR(64) NOT NULL UNIQUE,
    "full_name" VARCHAR(255),
    "email" VARCHAR(255),
    "phone" VARCHAR(64),
    "created_time" TIMESTAMPTZ NOT NULL,
    "field_data" JSONB NOT NULL,
    "raw_data" JSONB NOT NULL,
    "status" VARCHAR(16) NOT NULL  DEFAULT 'new',
    "notes" TEXT,
    "last_synced_at" TIMESTAMPTZ,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "user_id" INT NOT NULL REFERENCES "users" ("id") ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS "idx_leads_user_id_a41c7d" ON "leads" ("user_id", "form_id", "created_time");
COMMENT ON COLUMN "leads"."status" IS 'NEW: new\nCONTACTED: contacted\nQUALIFIED: qualified\nCONVERTED: converted\nLOST: lost';
CREATE TABLE IF NOT EXISTS "analytics_cache" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "ad_account_id" VARCHAR(64) NOT NULL,
    "date_preset" VARCHAR(32) NOT NULL,
    "breakdown" VARCHAR(64) NOT NULL  DEFAULT '',
    "data" JSONB,
    "fetched_at" TIMESTAMPTZ NOT NULL,
    "expires_at" TIMESTAMPTZ NOT NULL,
    "user_id" INT NOT NULL REFERENCES "users" ("id") ON DELETE CASCADE,
    CONSTRAINT "uid_analytics_c_user_id_f2b9e3" UNIQUE ("user_id", "ad_account_id", "date_preset", "breakdown")
);
CREATE INDEX IF NOT EXISTS "idx_analytics_c_expires_6d0a52" ON "analytics_cache" ("expires_at");
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        """
