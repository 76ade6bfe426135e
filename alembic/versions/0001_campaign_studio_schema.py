"""Campaigns, AI generations and AI usage"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_campaign_studio_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
    timestamp = sa.DateTime(timezone=True)

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="one-time"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_prompt", sa.Text(), nullable=True),
        sa.Column("from_name", sa.Text(), nullable=False),
        sa.Column("from_email", sa.Text(), nullable=False),
        sa.Column("reply_to_email", sa.Text(), nullable=True),
        sa.Column("subject_line", sa.Text(), nullable=True),
        sa.Column("preview_text", sa.Text(), nullable=True),
        sa.Column("html_content", sa.Text(), nullable=True),
        sa.Column("plain_text", sa.Text(), nullable=True),
        sa.Column("list_ids", json_type, nullable=False),
        sa.Column("blocks", json_type, nullable=True),
        sa.Column("design_config", json_type, nullable=True),
        sa.Column("send_config", json_type, nullable=False),
        sa.Column("stats", json_type, nullable=False),
        sa.Column("ai_metadata", json_type, nullable=True),
        sa.Column("created_at", timestamp, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", timestamp, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("type IN ('one-time', 'sequence', 'automation')", name="ck_campaigns_type"),
        sa.CheckConstraint(
            "status IN ('draft', 'scheduled', 'sending', 'sent', 'paused', 'cancelled')",
            name="ck_campaigns_status",
        ),
    )
    op.create_index("idx_campaigns_user_created", "campaigns", ["user_id", "created_at"])

    op.create_table(
        "ai_generations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("company_name", sa.Text(), nullable=True),
        sa.Column("product_description", sa.Text(), nullable=True),
        sa.Column("target_audience", sa.Text(), nullable=True),
        sa.Column("tone", sa.String(length=32), nullable=True),
        sa.Column("campaign_type", sa.String(length=32), nullable=True),
        sa.Column("generated_content", json_type, nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("model_version", sa.String(length=64), nullable=True),
        sa.Column("tokens_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("prompt_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_usd", sa.Numeric(12, 6), nullable=False, server_default="0"),
        sa.Column("generation_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", timestamp, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_ai_generations_user_created", "ai_generations", ["user_id", "created_at"])

    op.create_table(
        "ai_usage",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("feature", sa.String(length=64), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_usd", sa.Numeric(12, 6), nullable=False, server_default="0"),
        sa.Column("created_at", timestamp, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_ai_usage_user_feature_created", "ai_usage", ["user_id", "feature", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_ai_usage_user_feature_created", table_name="ai_usage")
    op.drop_table("ai_usage")
    op.drop_index("idx_ai_generations_user_created", table_name="ai_generations")
    op.drop_table("ai_generations")
    op.drop_index("idx_campaigns_user_created", table_name="campaigns")
    op.drop_table("campaigns")
