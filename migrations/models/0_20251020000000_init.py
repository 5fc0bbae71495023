from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "users" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "name" VARCHAR(255) NOT NULL,
    "email" VARCHAR(255) NOT NULL UNIQUE,
    "password" VARCHAR(255) NOT NULL,
    "role" VARCHAR(32) NOT NULL  DEFAULT 'admin',
    "is_active" BOOL NOT NULL  DEFAULT True,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP
);
COMMENT ON TABLE "users" IS 'Console staff account.';
CREATE TABLE IF NOT EXISTS "websites" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "domain" VARCHAR(255) NOT NULL UNIQUE,
    "title" VARCHAR(255) NOT NULL  DEFAULT '',
    "license_key" VARCHAR(64) NOT NULL UNIQUE,
    "plan" VARCHAR(16) NOT NULL  DEFAULT 'FREE',
    "status" VARCHAR(16) NOT NULL  DEFAULT 'ACTIVE',
    "credits_total" INT NOT NULL  DEFAULT 0,
    "credits_remaining" INT NOT NULL  DEFAULT 0,
    "credits_used" INT NOT NULL  DEFAULT 0,
    "subscription_start" TIMESTAMPTZ,
    "subscription_end" TIMESTAMPTZ,
    "next_reset" TIMESTAMPTZ,
    "last_sync" TIMESTAMPTZ,
    "messenger_enabled" BOOL NOT NULL  DEFAULT False,
    "facebook_page_id" VARCHAR(64) UNIQUE,
    "facebook_page_name" VARCHAR(255),
    "facebook_page_access_token" TEXT,
    "token_expires_at" TIMESTAMPTZ,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP
);
COMMENT ON COLUMN "websites"."plan" IS 'FREE: FREE\nBASIC: BASIC\nPRO: PRO\nENTERPRISE: ENTERPRISE';
COMMENT ON COLUMN "websites"."status" IS 'ACTIVE: ACTIVE\nINACTIVE: INACTIVE\nSUSPENDED: SUSPENDED';
CREATE TABLE IF NOT EXISTS "admin_logs" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "action" VARCHAR(64) NOT NULL,
    "old_value" JSONB,
    "new_value" JSONB,
    "reason" VARCHAR(512),
    "timestamp" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "user_id" INT REFERENCES "users" ("id") ON DELETE SET NULL,
    "website_id" INT NOT NULL REFERENCES "websites" ("id") ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS "idx_admin_logs_action_0b1c2e" ON "admin_logs" ("action");
CREATE INDEX IF NOT EXISTS "idx_admin_logs_timesta_5d7e1a" ON "admin_logs" ("timestamp");
CREATE INDEX IF NOT EXISTS "idx_admin_logs_website_9f3a44" ON "admin_logs" ("website_id");
CREATE TABLE IF NOT EXISTS "usage_logs" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "operation" VARCHAR(64) NOT NULL,
    "cost" INT NOT NULL  DEFAULT 0,
    "credits_remaining" INT NOT NULL  DEFAULT 0,
    "meta" JSONB,
    "timestamp" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "website_id" INT NOT NULL REFERENCES "websites" ("id") ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS "idx_usage_logs_operati_71c0d2" ON "usage_logs" ("operation");
CREATE INDEX IF NOT EXISTS "idx_usage_logs_timesta_2a6b90" ON "usage_logs" ("timestamp");
CREATE INDEX IF NOT EXISTS "idx_usage_logs_website_e4d815" ON "usage_logs" ("website_id");
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        DROP TABLE IF EXISTS "usage_logs";
DROP TABLE IF EXISTS "admin_logs";
DROP TABLE IF EXISTS "websites";
DROP TABLE IF EXISTS "users";"""
