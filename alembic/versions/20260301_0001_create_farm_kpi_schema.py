"""create farm KPI schema

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _jsonb() -> postgresql.JSONB:
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    # -- Organisation --------------------------------------------------------
    op.create_table(
        "firms",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("rut", sa.String(length=32), nullable=True, comment="Tax identifier"),
        sa.Column("is_active", sa.Boolean(), nullable=False, comment="Soft-disable a firm without deletion"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_firms"),
    )
    op.create_index("ix_firms_is_active", "firms", ["is_active"], unique=False)

    op.create_table(
        "lots",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("premise_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("area_hectares", sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_lots_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_lots"),
    )
    op.create_index("ix_lots_firm_id", "lots", ["firm_id"], unique=False)

    # -- Raw farm records ----------------------------------------------------
    op.create_table(
        "livestock_works",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=True),
        sa.Column("average_weight", sa.Float(), nullable=True, comment="Average live weight per head (kg)"),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_livestock_works_firm_id_firms", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lot_id"], ["lots.id"], name="fk_livestock_works_lot_id_lots", ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_livestock_works"),
    )
    op.create_index("ix_livestock_works_firm_date", "livestock_works", ["firm_id", "date"], unique=False)
    op.create_index("ix_livestock_works_lot_id", "livestock_works", ["lot_id"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_expenses_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
    )
    op.create_index("ix_expenses_firm_date", "expenses", ["firm_id", "date"], unique=False)

    op.create_table(
        "income",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_income_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_income"),
    )
    op.create_index("ix_income_firm_date", "income", ["firm_id", "date"], unique=False)

    op.create_table(
        "monitoreo_pasturas",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("altura_promedio_cm", sa.Float(), nullable=True),
        sa.Column("remanente_objetivo_cm", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_monitoreo_pasturas_firm_id_firms", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lot_id"], ["lots.id"], name="fk_monitoreo_pasturas_lot_id_lots", ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_monitoreo_pasturas"),
    )
    op.create_index("ix_monitoreo_pasturas_firm_fecha", "monitoreo_pasturas", ["firm_id", "fecha"], unique=False)

    op.create_table(
        "agricultural_works",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_agricultural_works_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_agricultural_works"),
    )
    op.create_index(
        "ix_agricultural_works_firm_created",
        "agricultural_works",
        ["firm_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "lluvias",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("premise_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("mm", sa.Float(), nullable=False),
        sa.Column("usuario", sa.String(length=255), nullable=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_lluvias_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_lluvias"),
    )
    op.create_index("ix_lluvias_premise_fecha", "lluvias", ["premise_id", "fecha"], unique=False)

    op.create_table(
        "decision_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("decision_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("scenario_name", sa.String(length=255), nullable=True),
        sa.Column("investment", sa.Float(), nullable=False),
        sa.Column("roi_calculated", sa.Float(), nullable=True),
        sa.Column("additional_income", sa.Float(), nullable=False),
        sa.Column("margin_improvement", sa.Float(), nullable=False),
        sa.Column("lessons", sa.Text(), nullable=True),
        sa.Column("kpis_before", _jsonb(), nullable=True),
        sa.Column("kpis_after", _jsonb(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_decision_history_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_decision_history"),
    )
    op.create_index(
        "ix_decision_history_firm_date",
        "decision_history",
        ["firm_id", "decision_date"],
        unique=False,
    )

    # -- KPI catalogue and history ------------------------------------------
    op.create_table(
        "kpi_definitions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("calculation_frequency", sa.String(length=16), nullable=False, comment="DAILY | WEEKLY | MONTHLY"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_kpi_definitions"),
        sa.UniqueConstraint("code", name="uq_kpi_definitions_code"),
    )
    op.create_index(
        "ix_kpi_definitions_frequency_active",
        "kpi_definitions",
        ["calculation_frequency", "is_active"],
        unique=False,
    )

    op.create_table(
        "kpi_thresholds",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("optimal_min", sa.Float(), nullable=False),
        sa.Column("optimal_max", sa.Float(), nullable=False),
        sa.Column("warning_min", sa.Float(), nullable=False),
        sa.Column("warning_max", sa.Float(), nullable=False),
        sa.Column("critical_min", sa.Float(), nullable=False),
        sa.Column("critical_max", sa.Float(), nullable=False),
        sa.Column("target_value", sa.Float(), nullable=True),
        sa.Column("changed_by", sa.String(length=255), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_kpi_thresholds_firm_id_firms", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["kpi_id"], ["kpi_definitions.id"], name="fk_kpi_thresholds_kpi_id_kpi_definitions", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_kpi_thresholds"),
    )
    op.create_index("ix_kpi_thresholds_firm_kpi", "kpi_thresholds", ["firm_id", "kpi_id"], unique=False)

    op.create_table(
        "kpi_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, comment="VERDE | AMARILLO | ROJO | SIN_DATOS"),
        sa.Column("metadata", _jsonb(), nullable=True),
        sa.Column("calculated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("calculated_by", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_kpi_history_firm_id_firms", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["kpi_id"], ["kpi_definitions.id"], name="fk_kpi_history_kpi_id_kpi_definitions", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_kpi_history"),
        sa.UniqueConstraint(
            "firm_id",
            "kpi_id",
            "period_start",
            "period_end",
            name="uq_kpi_history_firm_kpi_period",
        ),
    )
    op.create_index("ix_kpi_history_firm_period_end", "kpi_history", ["firm_id", "period_end"], unique=False)
    op.create_index("ix_kpi_history_calculated_at", "kpi_history", ["calculated_at"], unique=False)

    op.create_table(
        "kpi_consecutive_warnings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("consecutive_warning_days", sa.Integer(), nullable=False),
        sa.Column("last_warning_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["firm_id"], ["firms.id"], name="fk_kpi_consecutive_warnings_firm_id_firms", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["kpi_id"],
            ["kpi_definitions.id"],
            name="fk_kpi_consecutive_warnings_kpi_id_kpi_definitions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_kpi_consecutive_warnings"),
        sa.UniqueConstraint("firm_id", "kpi_id", name="uq_kpi_consecutive_warnings_firm_kpi"),
    )

    # -- Alerts --------------------------------------------------------------
    op.create_table(
        "alertas",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("premise_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("lot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("origen", sa.String(length=16), nullable=False),
        sa.Column("tipo", sa.String(length=50), nullable=False),
        sa.Column("titulo", sa.String(length=255), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("prioridad", sa.String(length=8), nullable=False),
        sa.Column("regla_aplicada", sa.String(length=100), nullable=True),
        sa.Column("estado", sa.String(length=16), nullable=False),
        sa.Column("fecha", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("metadata", _jsonb(), nullable=True),
        sa.Column("resuelta_por", sa.String(length=255), nullable=True),
        sa.Column("fecha_resolucion", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("dedup_key", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], name="fk_alertas_firm_id_firms", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_alertas"),
    )
    # At most one pending automatic alert per (firm, premise, lot, rule).
    op.create_index(
        "uq_alertas_pending_dedup_key",
        "alertas",
        ["dedup_key"],
        unique=True,
        postgresql_where=sa.text("estado = 'pendiente'"),
    )
    op.create_index("ix_alertas_firm_estado", "alertas", ["firm_id", "estado"], unique=False)
    op.create_index("ix_alertas_fecha", "alertas", ["fecha"], unique=False)

    op.create_table(
        "kpi_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("alert_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_history_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("threshold_type", sa.String(length=16), nullable=False, comment="WARNING | CRITICAL"),
        sa.Column("current_value", sa.Float(), nullable=False),
        sa.Column("days_in_status", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["alert_id"], ["alertas.id"], name="fk_kpi_alerts_alert_id_alertas", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["kpi_history_id"], ["kpi_history.id"], name="fk_kpi_alerts_kpi_history_id_kpi_history", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_kpi_alerts"),
    )
    op.create_index("ix_kpi_alerts_alert_id", "kpi_alerts", ["alert_id"], unique=False)
    op.create_index("ix_kpi_alerts_history_id", "kpi_alerts", ["kpi_history_id"], unique=False)

    # -- Logs ----------------------------------------------------------------
    op.create_table(
        "system_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event", sa.String(length=100), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_system_logs"),
    )
    op.create_index("ix_system_logs_event_created", "system_logs", ["event", "created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details", _jsonb(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_firm_created", "audit_logs", ["firm_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_firm_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_system_logs_event_created", table_name="system_logs")
    op.drop_table("system_logs")

    op.drop_index("ix_kpi_alerts_history_id", table_name="kpi_alerts")
    op.drop_index("ix_kpi_alerts_alert_id", table_name="kpi_alerts")
    op.drop_table("kpi_alerts")
    op.drop_index("ix_alertas_fecha", table_name="alertas")
    op.drop_index("ix_alertas_firm_estado", table_name="alertas")
    op.drop_index("uq_alertas_pending_dedup_key", table_name="alertas")
    op.drop_table("alertas")

    op.drop_table("kpi_consecutive_warnings")
    op.drop_index("ix_kpi_history_calculated_at", table_name="kpi_history")
    op.drop_index("ix_kpi_history_firm_period_end", table_name="kpi_history")
    op.drop_table("kpi_history")
    op.drop_index("ix_kpi_thresholds_firm_kpi", table_name="kpi_thresholds")
    op.drop_table("kpi_thresholds")
    op.drop_index("ix_kpi_definitions_frequency_active", table_name="kpi_definitions")
    op.drop_table("kpi_definitions")

    op.drop_index("ix_decision_history_firm_date", table_name="decision_history")
    op.drop_table("decision_history")
    op.drop_index("ix_lluvias_premise_fecha", table_name="lluvias")
    op.drop_table("lluvias")
    op.drop_index("ix_agricultural_works_firm_created", table_name="agricultural_works")
    op.drop_table("agricultural_works")
    op.drop_index("ix_monitoreo_pasturas_firm_fecha", table_name="monitoreo_pasturas")
    op.drop_table("monitoreo_pasturas")
    op.drop_index("ix_income_firm_date", table_name="income")
    op.drop_table("income")
    op.drop_index("ix_expenses_firm_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_livestock_works_lot_id", table_name="livestock_works")
    op.drop_index("ix_livestock_works_firm_date", table_name="livestock_works")
    op.drop_table("livestock_works")

    op.drop_index("ix_lots_firm_id", table_name="lots")
    op.drop_table("lots")
    op.drop_index("ix_firms_is_active", table_name="firms")
    op.drop_table("firms")
