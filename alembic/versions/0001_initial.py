"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

import os

import sqlalchemy as sa

from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_target = os.environ.get("MIGRATION_TARGET", "monitor").lower()


def _upgrade_site() -> None:
    op.create_table(
        "delivery_queue",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("queue_name", sa.String(length=32), nullable=False, index=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False, index=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at_utc", sa.DateTime(), nullable=True, index=True),
        sa.Column("leased_until_utc", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.String(length=300), nullable=True),
    )
    op.create_table(
        "delivery_dead_letter",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("queue_name", sa.String(length=32), nullable=False, index=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.String(length=300), nullable=False),
        sa.Column("queued_at_utc", sa.DateTime(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "site_credential",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.BigInteger(), nullable=True),
        sa.Column("updated_at_utc", sa.DateTime(), nullable=False),
    )


def _upgrade_monitor() -> None:
    op.create_table(
        "ow_tenant",
        sa.Column("site_machine_name", sa.String(length=32), primary_key=True),
        sa.Column("site_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("site_base_url", sa.String(length=512), nullable=True),
        sa.Column("last_seen_at_utc", sa.DateTime(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False),
        sa.Column("updated_at_utc", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "ow_event",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.String(length=64), nullable=False, index=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("author", sa.String(length=255), nullable=False),
        sa.Column("bundle", sa.String(length=64), nullable=False, index=True),
        sa.Column("entity", sa.String(length=32), nullable=False, index=True),
        sa.Column("timestamp", sa.Float(), nullable=False, index=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("site_base_url", sa.String(length=512), nullable=False),
        sa.Column("site_machine_name", sa.String(length=32), nullable=False, index=True),
        sa.Column("site_name", sa.String(length=255), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "ow_error_warning",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False, index=True),
    )
    op.create_table(
        "ow_extension_info",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("extension_name", sa.String(length=255), nullable=False),
        sa.Column("current_version", sa.String(length=64), nullable=False),
        sa.Column("recommended_version", sa.String(length=64), nullable=True),
        sa.Column("update_available", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("security_update", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_table(
        "ow_system_data",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("site_name", sa.String(length=255), nullable=False),
        sa.Column("site_machine_name", sa.String(length=32), nullable=False, index=True),
        sa.Column("site_type", sa.String(length=64), nullable=False),
        sa.Column("core_version", sa.String(length=64), nullable=False),
        sa.Column("report_time", sa.DateTime(), nullable=False),
        sa.Column("extensions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("security_updates", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("all_updates", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("warning_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status_report", sa.JSON(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False, index=True),
    )
    op.create_table(
        "ow_system_data_error_warning",
        sa.Column("system_data_id", sa.Integer(), sa.ForeignKey("ow_system_data.id"), primary_key=True),
        sa.Column("error_warning_id", sa.Integer(), sa.ForeignKey("ow_error_warning.id"), primary_key=True),
    )
    op.create_table(
        "ow_system_data_extension",
        sa.Column("system_data_id", sa.Integer(), sa.ForeignKey("ow_system_data.id"), primary_key=True),
        sa.Column("extension_info_id", sa.Integer(), sa.ForeignKey("ow_extension_info.id"), primary_key=True),
    )
    op.create_table(
        "ow_allowed_value",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("field_name", sa.String(length=32), nullable=False, index=True),
        sa.Column("value", sa.String(length=64), nullable=False),
        sa.Column("label", sa.String(length=128), nullable=True),
        sa.UniqueConstraint("field_name", "value", name="uq_allowed_field_value"),
    )
    op.create_table(
        "ow_api_client",
        sa.Column("client_id", sa.String(length=64), primary_key=True),
        sa.Column("secret_hash", sa.String(length=128), nullable=False),
        sa.Column("scopes", sa.String(length=256), nullable=False, server_default="rest_api"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "ow_user",
        sa.Column("username", sa.String(length=64), primary_key=True),
        sa.Column("password_hash", sa.String(length=128), nullable=False),
        sa.Column("roles", sa.String(length=256), nullable=False, server_default="site_reporter"),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False),
    )


def upgrade() -> None:
    if _target in ("site", "all"):
        _upgrade_site()
    if _target in ("monitor", "all"):
        _upgrade_monitor()


def downgrade() -> None:
    if _target in ("monitor", "all"):
        for table in (
            "ow_user",
            "ow_api_client",
            "ow_allowed_value",
            "ow_system_data_extension",
            "ow_system_data_error_warning",
            "ow_system_data",
            "ow_extension_info",
            "ow_error_warning",
            "ow_event",
            "ow_tenant",
        ):
            op.drop_table(table)
    if _target in ("site", "all"):
        for table in ("site_credential", "delivery_dead_letter", "delivery_queue"):
            op.drop_table(table)
