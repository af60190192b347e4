"""Initial pipeline schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Location (tenant root)
    op.create_table(
        "location",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("timezone", sa.String(50), server_default="UTC"),
        *_timestamps(),
    )
    op.create_index("ix_location_slug", "location", ["slug"])

    # Pipeline
    op.create_table(
        "pipeline",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("location_id", sa.Uuid, sa.ForeignKey("location.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(500)),
        sa.Column("color", sa.String(20)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("position", sa.Integer, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("location_id", "name", name="uq_pipeline_location_name"),
    )
    op.create_index("ix_pipeline_location_id", "pipeline", ["location_id"])

    # Pipeline Stage
    op.create_table(
        "pipeline_stage",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("pipeline_id", sa.Uuid, sa.ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("color", sa.String(20)),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("probability_percent", sa.Float),
        sa.Column("is_won", sa.Boolean, server_default=sa.false()),
        sa.Column("is_lost", sa.Boolean, server_default=sa.false()),
        sa.Column("stagnation_alert_days", sa.Integer),
        *_timestamps(),
        sa.UniqueConstraint("pipeline_id", "position", name="uq_stage_pipeline_position"),
    )
    op.create_index("ix_pipeline_stage_pipeline_id", "pipeline_stage", ["pipeline_id"])

    # Custom field definitions
    op.create_table(
        "pipeline_field_definition",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("pipeline_id", sa.Uuid, sa.ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage_id", sa.Uuid, sa.ForeignKey("pipeline_stage.id", ondelete="CASCADE")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("label", sa.String(200), nullable=False),
        sa.Column("field_type", sa.String(30), nullable=False),
        sa.Column("required", sa.Boolean, server_default=sa.false()),
        sa.Column("options_json", sa.JSON),
        sa.Column("validation_json", sa.JSON),
        sa.Column("placeholder", sa.String(200)),
        sa.Column("description", sa.Text),
        sa.Column("group_name", sa.String(100)),
        sa.Column("width", sa.String(10), server_default="full"),
        sa.Column("position", sa.Integer, server_default="0"),
        sa.Column("visible_in_kanban", sa.Boolean, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("pipeline_id", "name", name="uq_field_pipeline_name"),
    )
    op.create_index(
        "ix_pipeline_field_definition_pipeline_id", "pipeline_field_definition", ["pipeline_id"]
    )

    # Opportunity
    op.create_table(
        "opportunity",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("location_id", sa.Uuid, sa.ForeignKey("location.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pipeline_id", sa.Uuid, sa.ForeignKey("pipeline.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage_id", sa.Uuid, sa.ForeignKey("pipeline_stage.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("monetary_value", sa.Float),
        sa.Column("weighted_value", sa.Float),
        sa.Column("expected_close_date", sa.Date),
        sa.Column("notes", sa.Text),
        sa.Column("custom_fields", sa.JSON),
        sa.Column("status", sa.String(20), server_default="open"),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("entered_stage_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_opportunity_location_id", "opportunity", ["location_id"])
    op.create_index("ix_opportunity_pipeline_id", "opportunity", ["pipeline_id"])
    op.create_index("ix_opportunity_stage_id", "opportunity", ["stage_id"])

    # Stage transition history (append-only)
    op.create_table(
        "stage_transition",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("location_id", sa.Uuid, sa.ForeignKey("location.id", ondelete="CASCADE"), nullable=False),
        sa.Column("opportunity_id", sa.Uuid, sa.ForeignKey("opportunity.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_stage_id", sa.Uuid),
        sa.Column("to_stage_id", sa.Uuid, nullable=False),
        sa.Column("transitioned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("days_in_previous_stage", sa.Float),
    )
    op.create_index("ix_stage_transition_location_id", "stage_transition", ["location_id"])
    op.create_index("ix_stage_transition_opportunity_id", "stage_transition", ["opportunity_id"])


def downgrade() -> None:
    op.drop_table("stage_transition")
    op.drop_table("opportunity")
    op.drop_table("pipeline_field_definition")
    op.drop_table("pipeline_stage")
    op.drop_table("pipeline")
    op.drop_table("location")
