"""Lineage tables — recipes, tanks, batches, lots and their history.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Every table carries a `tenant_id` column; rows of different tenants share
the tables and are separated by it.

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _tenant_column() -> sa.Column:
    return sa.Column("tenant_id", sa.String(64), nullable=False, index=True)


def upgrade() -> None:
    # ── Reference data ───────────────────────────────────────

    op.create_table(
        "recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("style", sa.String(100)),
        sa.Column("yeast_strain", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tanks",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(30), server_default="UNITANK"),
        sa.Column("capacity", sa.Float()),
        sa.Column("status", sa.String(30), server_default="AVAILABLE", index=True),
        sa.Column("current_lot_id", sa.String(36)),
        sa.Column("current_phase", sa.String(30)),
        sa.Column("needs_cip", sa.Boolean(), server_default="false"),
        sa.Column("next_cip_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tenant_config",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "key", name="uq_tenant_config_key"),
    )

    # ── Batches ──────────────────────────────────────────────

    op.create_table(
        "batches",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("batch_number", sa.String(50), nullable=False, index=True),
        sa.Column("recipe_id", sa.String(36), sa.ForeignKey("recipes.id")),
        sa.Column("status", sa.String(30), server_default="PLANNED", index=True),
        sa.Column("volume", sa.Float(), server_default="0"),
        sa.Column("packaged_volume", sa.Float(), server_default="0"),
        sa.Column("original_gravity", sa.Float()),
        sa.Column("current_gravity", sa.Float()),
        sa.Column("final_gravity", sa.Float()),
        sa.Column("tank_id", sa.String(36), sa.ForeignKey("tanks.id")),
        sa.Column("brewed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "batch_number", name="uq_batches_tenant_number"),
    )

    op.create_table(
        "gravity_readings",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False, index=True),
        sa.Column("gravity", sa.Float(), nullable=False),
        sa.Column("temperature", sa.Float()),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    # ── Lots ─────────────────────────────────────────────────

    op.create_table(
        "lots",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("lot_code", sa.String(60), index=True),
        sa.Column("phase", sa.String(30), index=True),
        sa.Column("status", sa.String(30), server_default="PLANNED", index=True),
        sa.Column("planned_volume", sa.Float()),
        sa.Column("actual_volume", sa.Float()),
        sa.Column("parent_lot_id", sa.String(36), sa.ForeignKey("lots.id"), index=True),
        sa.Column("is_blend_result", sa.Boolean(), server_default="false"),
        sa.Column("blended_into_id", sa.String(36), sa.ForeignKey("lots.id")),
        sa.Column("tank_id", sa.String(36), sa.ForeignKey("tanks.id")),
        sa.Column("blended_at", sa.DateTime(timezone=True)),
        sa.Column("split_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "lot_code", name="uq_lots_tenant_code"),
    )

    op.create_table(
        "lot_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("lot_id", sa.String(36), sa.ForeignKey("lots.id"), nullable=False, index=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False, index=True),
        sa.Column("volume_contribution", sa.Float()),
        sa.Column("batch_percentage", sa.Float()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tank_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("tank_id", sa.String(36), sa.ForeignKey("tanks.id"), nullable=False, index=True),
        sa.Column("lot_id", sa.String(36), sa.ForeignKey("lots.id"), nullable=False, index=True),
        sa.Column("phase", sa.String(30), nullable=False),
        sa.Column("status", sa.String(30), server_default="PLANNED", index=True),
        sa.Column("planned_start", sa.DateTime(timezone=True)),
        sa.Column("planned_end", sa.DateTime(timezone=True)),
        sa.Column("actual_start", sa.DateTime(timezone=True)),
        sa.Column("actual_end", sa.DateTime(timezone=True)),
        sa.Column("planned_volume", sa.Float()),
        sa.Column("actual_volume", sa.Float()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Packaging & history ──────────────────────────────────

    op.create_table(
        "packaging_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False, index=True),
        sa.Column("package_type", sa.String(30), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("volume_total", sa.Float(), nullable=False),
        sa.Column("lot_number", sa.String(80), nullable=False, index=True),
        sa.Column("performed_by", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("performed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    op.create_table(
        "batch_history",
        sa.Column("id", sa.String(36), primary_key=True),
        _tenant_column(),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False, index=True),
        sa.Column("event_type", sa.String(50), nullable=False, index=True),
        sa.Column("summary", sa.Text()),
        sa.Column("event_data", sa.JSON()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table("batch_history")
    op.drop_table("packaging_runs")
    op.drop_table("tank_assignments")
    op.drop_table("lot_batches")
    op.drop_table("lots")
    op.drop_table("gravity_readings")
    op.drop_table("batches")
    op.drop_table("tenant_config")
    op.drop_table("tanks")
    op.drop_table("recipes")
