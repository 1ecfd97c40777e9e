"""Initial schema - cache assets, TikTok profiles and posts.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = ["cache_assets", "tiktok_profiles", "tiktok_posts"]


def upgrade() -> None:
    # --- ENUM types ---
    cache_status = sa.Enum("pending", "cached", "failed", name="cache_status")
    post_content_type = sa.Enum("video", "photo", name="post_content_type")

    # --- 1. cache_assets ---
    op.create_table(
        "cache_assets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("original_url", sa.Text, unique=True, nullable=False),
        sa.Column("cache_key", sa.Text, nullable=True),
        sa.Column("status", cache_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column("file_size", sa.BigInteger, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("cached_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 2. tiktok_profiles ---
    op.create_table(
        "tiktok_profiles",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("handle", sa.String(100), unique=True, nullable=False),
        sa.Column("nickname", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("avatar_id", UUID(as_uuid=True), sa.ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("total_posts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("total_views", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("total_likes", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("total_shares", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("total_comments", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("total_saves", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 3. tiktok_posts ---
    op.create_table(
        "tiktok_posts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tiktok_id", sa.String(64), unique=True, nullable=False),
        sa.Column("profile_id", UUID(as_uuid=True), sa.ForeignKey("tiktok_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tiktok_url", sa.Text, unique=True, nullable=False),
        sa.Column("content_type", post_content_type, nullable=False),
        sa.Column("title", sa.Text, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("author_nickname", sa.String(255), nullable=True),
        sa.Column("author_handle", sa.String(100), nullable=False),
        sa.Column("author_avatar_id", UUID(as_uuid=True), sa.ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("video_id", UUID(as_uuid=True), sa.ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("cover_id", UUID(as_uuid=True), sa.ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("music_id", UUID(as_uuid=True), sa.ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("images", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("hashtags", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("mentions", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("view_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("like_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("share_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("comment_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("save_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("duration", sa.Float, nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Indexes ---
    op.create_index("ix_cache_assets_status", "cache_assets", ["status"])
    op.create_index("ix_tiktok_profiles_handle", "tiktok_profiles", ["handle"])
    op.create_index("ix_tiktok_posts_tiktok_id", "tiktok_posts", ["tiktok_id"])
    op.create_index("ix_tiktok_posts_profile_id", "tiktok_posts", ["profile_id"])
    op.create_index("ix_tiktok_posts_author_handle", "tiktok_posts", ["author_handle"])
    op.create_index("ix_tiktok_posts_published_at", "tiktok_posts", ["published_at"])

    # updated_at auto-update trigger
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in TABLES:
        op.execute(f"""
            CREATE TRIGGER trigger_update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trigger_update_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    for table in reversed(TABLES):
        op.drop_table(table)

    for enum in ["cache_status", "post_content_type"]:
        op.execute(f"DROP TYPE IF EXISTS {enum}")
