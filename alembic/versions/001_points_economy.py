"""Points economy schema.

Creates actors (users, tenants), the points ledger, NFC tags and scans,
reward tokens and claims, challenges and participants, mini-games and
attempts, and social shares.

Revision ID: 001_points_economy
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_points_economy"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Actors ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(50) UNIQUE NOT NULL,
            email VARCHAR(320) UNIQUE,
            points INTEGER NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            status VARCHAR(20) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            CONSTRAINT ck_users_points_non_negative CHECK (points >= 0)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS tenants (
            id BIGSERIAL PRIMARY KEY,
            business_name VARCHAR(200) NOT NULL,
            email VARCHAR(320) UNIQUE,
            city VARCHAR(100),
            latitude NUMERIC(10,8),
            longitude NUMERIC(11,8),
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Points ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(64),
            description TEXT,
            balance_after INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_points_ledger_user_created
        ON points_ledger(user_id, created_at)
    """)

    # --- NFC ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS nfc_tags (
            id BIGSERIAL PRIMARY KEY,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            tag_identifier VARCHAR(100) UNIQUE NOT NULL,
            tag_name VARCHAR(100),
            location_description VARCHAR(200),
            latitude NUMERIC(10,8) NOT NULL,
            longitude NUMERIC(11,8) NOT NULL,
            scan_radius INTEGER NOT NULL DEFAULT 100,
            points_per_scan INTEGER NOT NULL DEFAULT 10,
            max_daily_scans INTEGER NOT NULL DEFAULT 5,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS nfc_scans (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            nfc_tag_id BIGINT NOT NULL REFERENCES nfc_tags(id) ON DELETE CASCADE,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            points_earned INTEGER NOT NULL,
            latitude DOUBLE PRECISION NOT NULL,
            longitude DOUBLE PRECISION NOT NULL,
            distance_m DOUBLE PRECISION NOT NULL,
            ip_address VARCHAR(45),
            device_info JSONB,
            is_valid BOOLEAN NOT NULL DEFAULT true,
            scanned_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_nfc_scans_user_tag_time
        ON nfc_scans(user_id, nfc_tag_id, scanned_at)
    """)

    # --- Tokens ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tokens (
            id BIGSERIAL PRIMARY KEY,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            token_name VARCHAR(200) NOT NULL,
            token_description TEXT,
            token_type VARCHAR(30) NOT NULL DEFAULT 'voucher',
            token_value NUMERIC(10,2) NOT NULL DEFAULT 0,
            required_points INTEGER NOT NULL,
            quantity_available INTEGER NOT NULL,
            quantity_claimed INTEGER NOT NULL DEFAULT 0,
            expiry_date TIMESTAMPTZ,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_tokens_quantity_bounds
                CHECK (quantity_claimed >= 0 AND quantity_claimed <= quantity_available)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS token_claims (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_id BIGINT NOT NULL REFERENCES tokens(id) ON DELETE CASCADE,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            claim_code VARCHAR(20) UNIQUE NOT NULL,
            points_spent INTEGER NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'claimed',
            claimed_at TIMESTAMPTZ NOT NULL,
            redeemed_at TIMESTAMPTZ,
            redeemed_by_tenant_id BIGINT REFERENCES tenants(id) ON DELETE SET NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_token_claims_user_token UNIQUE (user_id, token_id)
        )
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id BIGSERIAL PRIMARY KEY,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            title VARCHAR(200) NOT NULL,
            description TEXT,
            challenge_type VARCHAR(10) NOT NULL DEFAULT 'open',
            challenge_category VARCHAR(30),
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            max_participants INTEGER,
            entry_fee_points INTEGER NOT NULL DEFAULT 0,
            geofence_radius INTEGER,
            status VARCHAR(20) NOT NULL DEFAULT 'draft',
            rules JSONB,
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_participants (
            id BIGSERIAL PRIMARY KEY,
            challenge_id BIGINT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL,
            current_score INTEGER NOT NULL DEFAULT 0,
            completion_status VARCHAR(20) NOT NULL DEFAULT 'active',
            final_ranking INTEGER,
            CONSTRAINT uq_challenge_participants_pair UNIQUE (challenge_id, user_id)
        )
    """)

    # --- Games ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS games (
            id BIGSERIAL PRIMARY KEY,
            tenant_id BIGINT NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            challenge_id BIGINT REFERENCES challenges(id) ON DELETE SET NULL,
            game_type VARCHAR(50) NOT NULL,
            title VARCHAR(200) NOT NULL,
            description TEXT,
            game_data JSONB NOT NULL DEFAULT '{}'::jsonb,
            points_per_completion INTEGER NOT NULL DEFAULT 50,
            max_attempts_per_user INTEGER NOT NULL DEFAULT 3,
            time_limit_seconds INTEGER NOT NULL DEFAULT 300,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_attempts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            game_id BIGINT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            challenge_id BIGINT REFERENCES challenges(id) ON DELETE SET NULL,
            score INTEGER NOT NULL,
            max_score INTEGER NOT NULL,
            completion_percentage DOUBLE PRECISION NOT NULL,
            time_taken_seconds INTEGER,
            attempt_data JSONB,
            points_earned INTEGER NOT NULL DEFAULT 0,
            completed_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_game_attempts_user_game
        ON game_attempts(user_id, game_id)
    """)

    # --- Social shares ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS social_shares (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id BIGINT REFERENCES challenges(id) ON DELETE SET NULL,
            tenant_id BIGINT REFERENCES tenants(id) ON DELETE SET NULL,
            platform VARCHAR(20) NOT NULL,
            share_type VARCHAR(30) NOT NULL,
            share_content TEXT,
            points_earned INTEGER NOT NULL,
            verification_status VARCHAR(20) NOT NULL DEFAULT 'verified',
            shared_at TIMESTAMPTZ NOT NULL
        )
    """)


def downgrade() -> None:
    for table in [
        "social_shares",
        "game_attempts",
        "games",
        "challenge_participants",
        "challenges",
        "token_claims",
        "tokens",
        "nfc_scans",
        "nfc_tags",
        "points_ledger",
        "tenants",
        "users",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
