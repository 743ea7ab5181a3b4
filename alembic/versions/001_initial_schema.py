"""Initial TappHA schema.

Connections with their events, metrics and audit log; event filter
rules; AI suggestions; managed automations with history, backups,
versions, dependencies and retirements.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS: dict[str, tuple[str, ...]] = {
    "connectionstatus": ("CONNECTED", "DISCONNECTED", "ERROR"),
    "ruletype": ("INCLUDE", "EXCLUDE", "FREQUENCY", "PATTERN", "ENTITY", "STATE_CHANGE", "CUSTOM"),
    "ruleaction": ("ALLOW", "BLOCK", "THROTTLE", "BATCH", "PRIORITY", "LOG_ONLY"),
    "suggestiontype": (
        "AUTOMATION_OPTIMIZATION",
        "NEW_AUTOMATION",
        "SCHEDULE_ADJUSTMENT",
        "TRIGGER_REFINEMENT",
    ),
    "suggestionstatus": ("PENDING", "APPROVED", "REJECTED", "IMPLEMENTED", "FAILED", "ROLLED_BACK"),
    "approvaldecision": ("APPROVED", "REJECTED", "DEFERRED"),
    "lifecyclestate": ("PENDING", "ACTIVE", "INACTIVE", "RETIRED"),
    "backuptype": ("FULL", "MANUAL", "AUTOMATIC", "BEFORE_MODIFICATION"),
    "modificationtype": ("CREATE", "MODIFY", "ROLLBACK", "RETIRE"),
    "dependencytype": ("TRIGGER", "CONDITION", "ACTION"),
    "dependencystrength": ("STRONG", "WEAK", "OPTIONAL"),
    "retirementtype": ("IMMEDIATE", "SCHEDULED", "GRADUAL"),
    "retirementstatus": ("PENDING", "COMPLETED", "FAILED"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name)


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False)


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=False), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _connection_fk(table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ["connection_id"],
        ["ha_connection.id"],
        name=op.f(f"fk_{table}_connection_id_ha_connection"),
        ondelete="CASCADE",
    )


def _automation_fk(
    table: str, column: str = "managed_automation_id", ondelete: str = "CASCADE"
) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column],
        ["managed_automation.id"],
        name=op.f(f"fk_{table}_{column}_managed_automation"),
        ondelete=ondelete,
    )


def upgrade() -> None:
    """Create all tables."""
    # Connections
    op.create_table(
        "ha_connection",
        _id(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("encrypted_token", sa.Text(), nullable=False),
        sa.Column("status", _enum("connectionstatus"), nullable=False),
        sa.Column("home_assistant_version", sa.String(50), nullable=True),
        sa.Column("last_connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("connection_health", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ha_connection")),
        sa.UniqueConstraint("user_id", "url", name="uq_ha_connection_user_url"),
    )
    op.create_index(op.f("ix_ha_connection_user_id"), "ha_connection", ["user_id"])
    op.create_index("ix_ha_connection_user_status", "ha_connection", ["user_id", "status"])

    op.create_table(
        "ha_event",
        _id(),
        _uuid("connection_id"),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.String(255), nullable=True),
        sa.Column("old_state", sa.Text(), nullable=True),
        sa.Column("new_state", sa.Text(), nullable=True),
        sa.Column("attributes", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        _connection_fk("ha_event"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ha_event")),
    )
    op.create_index(op.f("ix_ha_event_connection_id"), "ha_event", ["connection_id"])
    op.create_index("ix_ha_event_connection_timestamp", "ha_event", ["connection_id", "timestamp"])
    op.create_index("ix_ha_event_connection_type", "ha_event", ["connection_id", "event_type"])
    op.create_index("ix_ha_event_connection_entity", "ha_event", ["connection_id", "entity_id"])

    op.create_table(
        "connection_metric",
        _id(),
        _uuid("connection_id"),
        sa.Column("metric_type", sa.String(50), nullable=False),
        sa.Column("metric_value", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        _connection_fk("connection_metric"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_connection_metric")),
    )
    op.create_index(op.f("ix_connection_metric_connection_id"), "connection_metric", ["connection_id"])
    op.create_index(
        "ix_connection_metric_lookup",
        "connection_metric",
        ["connection_id", "metric_type", "timestamp"],
    )

    op.create_table(
        "connection_audit_log",
        _id(),
        _uuid("connection_id"),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        _connection_fk("connection_audit_log"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_connection_audit_log")),
    )
    op.create_index(
        op.f("ix_connection_audit_log_connection_id"), "connection_audit_log", ["connection_id"]
    )
    op.create_index(
        "ix_connection_audit_log_connection_timestamp",
        "connection_audit_log",
        ["connection_id", "timestamp"],
    )

    # Event filter rules
    op.create_table(
        "event_filter_rule",
        _id(),
        sa.Column("user_id", sa.String(255), nullable=False),
        _uuid("connection_id", nullable=True),
        sa.Column("rule_name", sa.String(255), nullable=False),
        sa.Column("rule_type", _enum("ruletype"), nullable=False),
        sa.Column("action", _enum("ruleaction"), nullable=False),
        sa.Column("conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_types", sa.Text(), nullable=True),
        sa.Column("entity_patterns", sa.Text(), nullable=True),
        sa.Column("frequency_limit", sa.Integer(), nullable=True),
        sa.Column("time_window_minutes", sa.Integer(), nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False),
        sa.Column("last_matched_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        _connection_fk("event_filter_rule"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_event_filter_rule")),
        sa.UniqueConstraint("user_id", "rule_name", name="uq_event_filter_rule_user_name"),
    )
    op.create_index(op.f("ix_event_filter_rule_user_id"), "event_filter_rule", ["user_id"])
    op.create_index(
        op.f("ix_event_filter_rule_connection_id"), "event_filter_rule", ["connection_id"]
    )
    op.create_index(
        "ix_event_filter_rule_user_priority", "event_filter_rule", ["user_id", "priority"]
    )

    # AI suggestions
    op.create_table(
        "ai_suggestion",
        _id(),
        _uuid("connection_id"),
        sa.Column("suggestion_type", _enum("suggestiontype"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("automation_config", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("status", _enum("suggestionstatus"), nullable=False),
        sa.Column("ha_automation_id", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        _connection_fk("ai_suggestion"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ai_suggestion")),
    )
    op.create_index(op.f("ix_ai_suggestion_connection_id"), "ai_suggestion", ["connection_id"])
    op.create_index(op.f("ix_ai_suggestion_status"), "ai_suggestion", ["status"])
    op.create_index("ix_ai_suggestion_connection_status", "ai_suggestion", ["connection_id", "status"])
    op.create_index("ix_ai_suggestion_created_at", "ai_suggestion", ["created_at"])

    op.create_table(
        "ai_suggestion_approval",
        _id(),
        _uuid("suggestion_id"),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("decision", _enum("approvaldecision"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rollback_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["suggestion_id"],
            ["ai_suggestion.id"],
            name=op.f("fk_ai_suggestion_approval_suggestion_id_ai_suggestion"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ai_suggestion_approval")),
    )
    op.create_index(
        op.f("ix_ai_suggestion_approval_suggestion_id"), "ai_suggestion_approval", ["suggestion_id"]
    )

    op.create_table(
        "ai_suggestion_feedback",
        _id(),
        _uuid("suggestion_id"),
        sa.Column("effectiveness_rating", sa.Integer(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("performance_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("feedback_date", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["suggestion_id"],
            ["ai_suggestion.id"],
            name=op.f("fk_ai_suggestion_feedback_suggestion_id_ai_suggestion"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ai_suggestion_feedback")),
    )
    op.create_index(
        op.f("ix_ai_suggestion_feedback_suggestion_id"), "ai_suggestion_feedback", ["suggestion_id"]
    )

    # Automation lifecycle
    op.create_table(
        "managed_automation",
        _id(),
        _uuid("connection_id"),
        sa.Column("ha_automation_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("lifecycle_state", _enum("lifecyclestate"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("execution_count", sa.Integer(), nullable=False),
        sa.Column("last_execution_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("modified_by", sa.String(255), nullable=True),
        *_timestamps(),
        _connection_fk("managed_automation"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_managed_automation")),
        sa.UniqueConstraint(
            "connection_id",
            "ha_automation_id",
            name="uq_managed_automation_connection_ha_id",
        ),
    )
    op.create_index(
        op.f("ix_managed_automation_connection_id"), "managed_automation", ["connection_id"]
    )
    op.create_index(
        "ix_managed_automation_state", "managed_automation", ["lifecycle_state", "is_active"]
    )

    op.create_table(
        "automation_lifecycle_history",
        _id(),
        _uuid("managed_automation_id"),
        sa.Column("previous_state", sa.String(50), nullable=True),
        sa.Column("new_state", sa.String(50), nullable=False),
        sa.Column("transition_reason", sa.Text(), nullable=True),
        sa.Column("transitioned_by", sa.String(255), nullable=True),
        sa.Column("transition_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _automation_fk("automation_lifecycle_history"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automation_lifecycle_history")),
    )
    op.create_index(
        "ix_lifecycle_history_automation_timestamp",
        "automation_lifecycle_history",
        ["managed_automation_id", "transition_timestamp"],
    )

    op.create_table(
        "automation_backup",
        _id(),
        _uuid("connection_id"),
        _uuid("managed_automation_id"),
        sa.Column("backup_type", _enum("backuptype"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("backup_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _connection_fk("automation_backup"),
        _automation_fk("automation_backup"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automation_backup")),
    )
    op.create_index(
        op.f("ix_automation_backup_connection_id"), "automation_backup", ["connection_id"]
    )
    op.create_index(
        "ix_automation_backup_automation_created",
        "automation_backup",
        ["managed_automation_id", "created_at"],
    )

    op.create_table(
        "automation_version",
        _id(),
        _uuid("connection_id"),
        _uuid("managed_automation_id"),
        _uuid("backup_id", nullable=True),
        _uuid("previous_version_id", nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.String(20), nullable=False),
        sa.Column("modification_type", _enum("modificationtype"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _connection_fk("automation_version"),
        _automation_fk("automation_version"),
        sa.ForeignKeyConstraint(
            ["backup_id"],
            ["automation_backup.id"],
            name=op.f("fk_automation_version_backup_id_automation_backup"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["previous_version_id"],
            ["automation_version.id"],
            name=op.f("fk_automation_version_previous_version_id_automation_version"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automation_version")),
    )
    op.create_index(
        op.f("ix_automation_version_connection_id"), "automation_version", ["connection_id"]
    )
    op.create_index(
        "ix_automation_version_automation_sequence",
        "automation_version",
        ["managed_automation_id", "sequence"],
    )

    op.create_table(
        "automation_dependency",
        _id(),
        _uuid("connection_id"),
        _uuid("source_automation_id"),
        _uuid("target_automation_id"),
        sa.Column("dependency_type", _enum("dependencytype"), nullable=False),
        sa.Column("strength", _enum("dependencystrength"), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        _connection_fk("automation_dependency"),
        _automation_fk("automation_dependency", "source_automation_id"),
        _automation_fk("automation_dependency", "target_automation_id"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automation_dependency")),
    )
    op.create_index(
        op.f("ix_automation_dependency_connection_id"), "automation_dependency", ["connection_id"]
    )
    op.create_index(
        "ix_automation_dependency_target_active",
        "automation_dependency",
        ["target_automation_id", "active"],
    )
    op.create_index(
        "ix_automation_dependency_source_active",
        "automation_dependency",
        ["source_automation_id", "active"],
    )

    op.create_table(
        "automation_retirement",
        _id(),
        _uuid("connection_id"),
        _uuid("managed_automation_id"),
        sa.Column("requested_by", sa.String(255), nullable=False),
        sa.Column("retirement_type", _enum("retirementtype"), nullable=False),
        sa.Column("status", _enum("retirementstatus"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("force", sa.Boolean(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("backup_id", nullable=True),
        _uuid("replacement_automation_id", nullable=True),
        sa.Column("resolved_dependencies", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        _connection_fk("automation_retirement"),
        _automation_fk("automation_retirement"),
        _automation_fk("automation_retirement", "replacement_automation_id", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["backup_id"],
            ["automation_backup.id"],
            name=op.f("fk_automation_retirement_backup_id_automation_backup"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automation_retirement")),
    )
    op.create_index(
        op.f("ix_automation_retirement_connection_id"), "automation_retirement", ["connection_id"]
    )
    op.create_index(
        op.f("ix_automation_retirement_managed_automation_id"),
        "automation_retirement",
        ["managed_automation_id"],
    )
    op.create_index("ix_automation_retirement_due", "automation_retirement", ["status", "scheduled_at"])


def downgrade() -> None:
    """Drop all tables and enum types."""
    for table in (
        "automation_retirement",
        "automation_dependency",
        "automation_version",
        "automation_backup",
        "automation_lifecycle_history",
        "managed_automation",
        "ai_suggestion_feedback",
        "ai_suggestion_approval",
        "ai_suggestion",
        "event_filter_rule",
        "connection_audit_log",
        "connection_metric",
        "ha_event",
        "ha_connection",
    ):
        op.drop_table(table)
    for name in ENUMS:
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
