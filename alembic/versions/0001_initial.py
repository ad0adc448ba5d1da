"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "machines",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("enrollment_token", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_machines_user_id", "machines", ["user_id"], unique=False)
    op.create_index("ix_machines_enrollment_token", "machines", ["enrollment_token"], unique=True)

    op.create_table(
        "inventory_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("machine_id", sa.String(length=36), sa.ForeignKey("machines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hostname", sa.Text(), nullable=False),
        sa.Column("os", sa.Text(), nullable=False),
        sa.Column("os_version", sa.Text(), nullable=False),
        sa.Column("disk_encrypted", sa.Boolean(), nullable=False),
        sa.Column("disk_encryption_details", sa.Text(), nullable=False),
        sa.Column("antivirus_enabled", sa.Boolean(), nullable=False),
        sa.Column("antivirus_details", sa.Text(), nullable=False),
        sa.Column("firewall_enabled", sa.Boolean(), nullable=False),
        sa.Column("firewall_details", sa.Text(), nullable=False),
        sa.Column("screen_lock_enabled", sa.Boolean(), nullable=False),
        sa.Column("screen_lock_timeout", sa.Integer(), nullable=False),
        sa.Column("screen_lock_details", sa.Text(), nullable=False),
        sa.Column("raw_data", sa.Text(), nullable=False),
    )
    op.create_index("ix_inventory_snapshots_machine_id", "inventory_snapshots", ["machine_id"], unique=False)
    op.create_index("ix_inventory_snapshots_collected_at", "inventory_snapshots", ["collected_at"], unique=False)
    op.create_index(
        "ix_inventory_snapshots_latest", "inventory_snapshots", ["machine_id", "collected_at", "id"], unique=False
    )

    op.create_table(
        "machine_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("machine_id", sa.String(length=36), sa.ForeignKey("machines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.String(length=255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_machine_notes_machine_id", "machine_notes", ["machine_id"], unique=False)

    op.create_table(
        "share_links",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("created_by", sa.String(length=255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_share_links_created_by", "share_links", ["created_by"], unique=False)
    op.create_index("ix_share_links_expires_at", "share_links", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_share_links_expires_at", table_name="share_links")
    op.drop_index("ix_share_links_created_by", table_name="share_links")
    op.drop_table("share_links")
    op.drop_index("ix_machine_notes_machine_id", table_name="machine_notes")
    op.drop_table("machine_notes")
    op.drop_index("ix_inventory_snapshots_latest", table_name="inventory_snapshots")
    op.drop_index("ix_inventory_snapshots_collected_at", table_name="inventory_snapshots")
    op.drop_index("ix_inventory_snapshots_machine_id", table_name="inventory_snapshots")
    op.drop_table("inventory_snapshots")
    op.drop_index("ix_machines_enrollment_token", table_name="machines")
    op.drop_index("ix_machines_user_id", table_name="machines")
    op.drop_table("machines")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
