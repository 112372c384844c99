"""create annonest schema

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _entity_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("sources_used", sa.JSON(), nullable=False),
        sa.Column("source_urls", sa.JSON(), nullable=False),
        sa.Column("last_updated_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("last_updated_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _status_column() -> sa.Column:
    return sa.Column("status", sa.String(length=32), nullable=False, server_default="active")


def _create_entity_table(name: str, *columns: sa.Column) -> None:
    op.create_table(name, *_entity_columns(), *columns)
    op.create_index(f"ix_{name}_org_id", name, ["org_id"])


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("org_type", sa.String(length=32), nullable=False, server_default="client"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="annotator"),
        sa.Column("approval_status", sa.String(length=32), nullable=False, server_default="approved"),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_org_id", "users", ["org_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_org_entity", "audit_logs", ["org_id", "entity_type", "entity_id"])

    op.create_table(
        "label_projects",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("label_type", sa.String(length=32), nullable=False),
        sa.Column("project_category", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("work_context", sa.String(length=32), nullable=False, server_default="internal"),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_label_projects_org_id", "label_projects", ["org_id"])

    op.create_table(
        "annotation_tasks",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("label_projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_to", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_annotation_tasks_org_id", "annotation_tasks", ["org_id"])
    op.create_index("ix_annotation_tasks_project_id", "annotation_tasks", ["project_id"])
    op.create_index("ix_annotation_tasks_assigned_to", "annotation_tasks", ["assigned_to"])

    op.create_table(
        "news",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("headline", sa.Text(), nullable=False),
        sa.Column("source_name", sa.Text(), nullable=True),
        sa.Column("publish_date", sa.String(length=64), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("cleaned_text", sa.Text(), nullable=True),
        sa.Column("language", sa.String(length=16), nullable=True),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_news_org_id", "news", ["org_id"])

    op.create_table(
        "news_entity_links",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("news_id", sa.Uuid(as_uuid=True), sa.ForeignKey("news.id", ondelete="CASCADE"), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("news_id", "entity_type", "entity_id", name="uq_news_entity_link"),
    )
    op.create_index("ix_news_entity_links_org_id", "news_entity_links", ["org_id"])
    op.create_index("ix_news_entity_links_entity", "news_entity_links", ["entity_type", "entity_id"])

    _create_entity_table(
        "entities_gp",
        sa.Column("gp_name", sa.Text(), nullable=False),
        sa.Column("gp_legal_name", sa.Text(), nullable=True),
        sa.Column("firm_type", sa.String(length=64), nullable=True),
        sa.Column("headquarters_country", sa.String(length=128), nullable=True),
        sa.Column("headquarters_city", sa.String(length=128), nullable=True),
        sa.Column("total_aum", sa.String(length=64), nullable=True),
        sa.Column("aum_currency", sa.String(length=16), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("primary_asset_classes", sa.Text(), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        _status_column(),
    )
    _create_entity_table(
        "entities_lp",
        sa.Column("lp_name", sa.Text(), nullable=False),
        sa.Column("lp_legal_name", sa.Text(), nullable=True),
        sa.Column("firm_type", sa.String(length=64), nullable=True),
        sa.Column("investor_type", sa.String(length=64), nullable=True),
        sa.Column("headquarters_country", sa.String(length=128), nullable=True),
        sa.Column("headquarters_city", sa.String(length=128), nullable=True),
        sa.Column("total_aum", sa.String(length=64), nullable=True),
        sa.Column("aum_currency", sa.String(length=16), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        _status_column(),
    )
    _create_entity_table(
        "entities_fund",
        sa.Column("fund_name", sa.Text(), nullable=False),
        sa.Column("gp_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("fund_type", sa.String(length=64), nullable=True),
        sa.Column("vintage_year", sa.Integer(), nullable=True),
        sa.Column("fund_size", sa.String(length=64), nullable=True),
        sa.Column("fund_currency", sa.String(length=16), nullable=True),
        sa.Column("target_size", sa.String(length=64), nullable=True),
        sa.Column("fund_status", sa.String(length=32), nullable=True),
        sa.Column("primary_sector", sa.String(length=128), nullable=True),
        sa.Column("geographic_focus", sa.String(length=128), nullable=True),
    )
    _create_entity_table(
        "entities_service_provider",
        sa.Column("provider_name", sa.Text(), nullable=False),
        sa.Column("provider_type", sa.String(length=64), nullable=True),
        sa.Column("headquarters_country", sa.String(length=128), nullable=True),
        sa.Column("headquarters_city", sa.String(length=128), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("services_offered", sa.Text(), nullable=True),
        sa.Column("sector_expertise", sa.Text(), nullable=True),
        sa.Column("geographic_coverage", sa.Text(), nullable=True),
        sa.Column("founded_year", sa.Integer(), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        _status_column(),
    )
    _create_entity_table(
        "entities_portfolio_company",
        sa.Column("company_name", sa.Text(), nullable=False),
        sa.Column("company_type", sa.String(length=64), nullable=True),
        sa.Column("headquarters_country", sa.String(length=128), nullable=True),
        sa.Column("headquarters_city", sa.String(length=128), nullable=True),
        sa.Column("primary_industry", sa.String(length=128), nullable=True),
        sa.Column("business_model", sa.String(length=128), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("business_description", sa.Text(), nullable=True),
        sa.Column("founded_year", sa.Integer(), nullable=True),
        sa.Column("employee_count", sa.Integer(), nullable=True),
        _status_column(),
    )
    _create_entity_table(
        "entities_deal",
        sa.Column("deal_name", sa.Text(), nullable=False),
        sa.Column("deal_type", sa.String(length=64), nullable=True),
        sa.Column("deal_status", sa.String(length=32), nullable=True),
        sa.Column("deal_round", sa.String(length=64), nullable=True),
        sa.Column("deal_amount", sa.String(length=64), nullable=True),
        sa.Column("deal_currency", sa.String(length=16), nullable=True),
        sa.Column("deal_date", sa.String(length=32), nullable=True),
        sa.Column("target_company", sa.Text(), nullable=True),
        sa.Column("target_company_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("acquirer_company", sa.Text(), nullable=True),
        sa.Column("acquirer_company_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("sector", sa.String(length=128), nullable=True),
        sa.Column("asset_class", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    _create_entity_table(
        "entities_contact",
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("company_name", sa.Text(), nullable=True),
        sa.Column("linked_entity_type", sa.String(length=32), nullable=True),
        sa.Column("linked_entity_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _status_column(),
    )

    op.create_table(
        "relationships",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("from_entity_type", sa.String(length=32), nullable=False),
        sa.Column("from_entity_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("from_entity_name_snapshot", sa.Text(), nullable=True),
        sa.Column("to_entity_type", sa.String(length=32), nullable=False),
        sa.Column("to_entity_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("to_entity_name_snapshot", sa.Text(), nullable=True),
        sa.Column("relationship_type", sa.String(length=64), nullable=False),
        sa.Column("relationship_status", sa.String(length=32), nullable=False, server_default="Active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_relationships_org_id", "relationships", ["org_id"])
    op.create_index("ix_relationships_from", "relationships", ["from_entity_type", "from_entity_id"])
    op.create_index("ix_relationships_to", "relationships", ["to_entity_type", "to_entity_id"])

    op.create_table(
        "entities_project",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("project_type", sa.String(length=32), nullable=False, server_default="research"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entities_project_org_id", "entities_project", ["org_id"])

    op.create_table(
        "entities_project_items",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("entities_project.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("entity_name_snapshot", sa.Text(), nullable=True),
        sa.Column("assigned_to", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("task_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entities_project_items_org_id", "entities_project_items", ["org_id"])
    op.create_index("ix_entities_project_items_project_id", "entities_project_items", ["project_id"])
    op.create_index("ix_entities_project_items_assigned_to", "entities_project_items", ["assigned_to"])

    op.create_table(
        "entities_project_members",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("entities_project.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "user_id", name="uq_entities_project_member"),
    )
    op.create_index("ix_entities_project_members_user_id", "entities_project_members", ["user_id"])

    op.create_table(
        "entity_edit_locks",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("org_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("locked_by", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("locked_by_name", sa.Text(), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("org_id", "entity_type", "entity_id", name="uq_entity_edit_locks_entity"),
    )
    op.create_index("ix_entity_edit_locks_org_id", "entity_edit_locks", ["org_id"])
    op.create_index("ix_entity_edit_locks_locked_at", "entity_edit_locks", ["locked_at"])


def downgrade() -> None:
    op.drop_table("entity_edit_locks")
    op.drop_table("entities_project_members")
    op.drop_table("entities_project_items")
    op.drop_table("entities_project")
    op.drop_table("relationships")
    for name in (
        "entities_contact",
        "entities_deal",
        "entities_portfolio_company",
        "entities_service_provider",
        "entities_fund",
        "entities_lp",
        "entities_gp",
    ):
        op.drop_table(name)
    op.drop_table("news_entity_links")
    op.drop_table("news")
    op.drop_table("annotation_tasks")
    op.drop_table("label_projects")
    op.drop_table("audit_logs")
    op.drop_table("users")
    op.drop_table("organizations")
