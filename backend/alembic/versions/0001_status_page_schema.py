"""status page schema: components, incidents, maintenances, users

Revision ID: 0001_status_page_schema
Revises:
Create Date: 2026-10-17 09:00:00
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_status_page_schema"
down_revision = None
branch_labels = None
depends_on = None

STATUS_VALUES = "'operational', 'degraded', 'partial_outage', 'major_outage', 'potential_outage'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "components",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("group_name", sa.String(length=255), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="operational"),
        sa.Column("version_url", sa.Text(), nullable=True),
        sa.Column("namespace", sa.String(length=128), nullable=True),
        sa.Column("detected_version", sa.String(length=64), nullable=True),
        sa.Column("version_last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shadow_status", sa.String(length=32), nullable=False, server_default="operational"),
        sa.Column("shadow_version_url", sa.Text(), nullable=True),
        sa.Column("shadow_namespace", sa.String(length=128), nullable=True),
        sa.Column("shadow_detected_version", sa.String(length=64), nullable=True),
        sa.Column("shadow_version_last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("website_status", sa.String(length=32), nullable=False, server_default="operational"),
        sa.Column("website_url", sa.Text(), nullable=True),
        sa.Column("website_last_checked", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(f"status IN ({STATUS_VALUES})", name="ck_components_status_values"),
        sa.CheckConstraint(f"shadow_status IN ({STATUS_VALUES})", name="ck_components_shadow_status_values"),
        sa.CheckConstraint(f"website_status IN ({STATUS_VALUES})", name="ck_components_website_status_values"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_components_status", "components", ["status"], unique=False)

    op.create_table(
        "incidents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("incident_number", sa.String(length=32), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("affected_services", sa.Text(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("domain_distribution", sa.Text(), nullable=True),
        sa.Column("impact", sa.String(length=8), nullable=False, server_default="P2"),
        sa.Column("current_status", sa.String(length=16), nullable=False, server_default="identified"),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="public"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("impact IN ('P1', 'P2')", name="ck_incidents_impact_values"),
        sa.CheckConstraint(
            "current_status IN ('identified', 'monitoring', 'resolved')",
            name="ck_incidents_current_status_values",
        ),
        sa.CheckConstraint("visibility IN ('public', 'internal')", name="ck_incidents_visibility_values"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_incidents_incident_number", "incidents", ["incident_number"], unique=False)
    op.create_index("ix_incidents_current_status", "incidents", ["current_status"], unique=False)
    op.create_index("ix_incidents_resolved_at", "incidents", ["resolved_at"], unique=False)

    op.create_table(
        "incident_components",
        sa.Column("incident_id", sa.Uuid(), nullable=False),
        sa.Column("component_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(["incident_id"], ["incidents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["component_id"], ["components.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("incident_id", "component_id"),
    )
    op.create_index("ix_incident_components_component_id", "incident_components", ["component_id"], unique=False)

    op.create_table(
        "incident_updates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("incident_id", sa.Uuid(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="monitoring"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["incident_id"], ["incidents.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_incident_updates_incident_id", "incident_updates", ["incident_id"], unique=False)

    op.create_table(
        "maintenances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed')",
            name="ck_maintenances_status_values",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_maintenances_window_start", "maintenances", ["window_start"], unique=False)

    op.create_table(
        "maintenance_components",
        sa.Column("maintenance_id", sa.Uuid(), nullable=False),
        sa.Column("component_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(["maintenance_id"], ["maintenances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["component_id"], ["components.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("maintenance_id", "component_id"),
    )
    op.create_index(
        "ix_maintenance_components_component_id",
        "maintenance_components",
        ["component_id"],
        unique=False,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="admin"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )


def downgrade() -> None:
    op.drop_table("users")
    op.drop_index("ix_maintenance_components_component_id", table_name="maintenance_components")
    op.drop_table("maintenance_components")
    op.drop_index("ix_maintenances_window_start", table_name="maintenances")
    op.drop_table("maintenances")
    op.drop_index("ix_incident_updates_incident_id", table_name="incident_updates")
    op.drop_table("incident_updates")
    op.drop_index("ix_incident_components_component_id", table_name="incident_components")
    op.drop_table("incident_components")
    op.drop_index("ix_incidents_resolved_at", table_name="incidents")
    op.drop_index("ix_incidents_current_status", table_name="incidents")
    op.drop_index("ix_incidents_incident_number", table_name="incidents")
    op.drop_table("incidents")
    op.drop_index("ix_components_status", table_name="components")
    op.drop_table("components")
