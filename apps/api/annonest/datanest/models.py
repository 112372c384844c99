from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from annonest.core.database import Base, utcnow


ENTITY_TYPES = ("gp", "lp", "fund", "service_provider", "portfolio_company", "deal", "contact")
SOURCE_TYPES = (
    "Website",
    "Regulatory Filing",
    "News / Press Release",
    "Company Deck / PDF",
    "Database",
    "LinkedIn",
    "Email / Direct Confirmation",
    "Internal Research",
    "Client Provided",
    "Other",
)
PROJECT_TYPES = ("research", "data_enrichment", "verification", "outreach", "custom")
PROJECT_STATUSES = ("active", "paused", "completed", "archived")
ITEM_STATUSES = ("pending", "in_progress", "completed", "blocked")


class EntityRecordMixin:
    """Columns shared by every DataNest entity table: tenancy, provenance and edit stamps."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    sources_used: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    source_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    last_updated_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (Index(f"ix_{cls.__tablename__}_org_id", "org_id"),)


class EntityGp(EntityRecordMixin, Base):
    __tablename__ = "entities_gp"

    gp_name: Mapped[str] = mapped_column(Text, nullable=False)
    gp_legal_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    firm_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    headquarters_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    headquarters_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_aum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    aum_currency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_asset_classes: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")


class EntityLp(EntityRecordMixin, Base):
    __tablename__ = "entities_lp"

    lp_name: Mapped[str] = mapped_column(Text, nullable=False)
    lp_legal_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    firm_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    investor_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    headquarters_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    headquarters_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_aum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    aum_currency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")


class EntityFund(EntityRecordMixin, Base):
    __tablename__ = "entities_fund"

    fund_name: Mapped[str] = mapped_column(Text, nullable=False)
    # soft reference, not a foreign key
    gp_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    fund_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vintage_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fund_size: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fund_currency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    target_size: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fund_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    primary_sector: Mapped[str | None] = mapped_column(String(128), nullable=True)
    geographic_focus: Mapped[str | None] = mapped_column(String(128), nullable=True)


class EntityServiceProvider(EntityRecordMixin, Base):
    __tablename__ = "entities_service_provider"

    provider_name: Mapped[str] = mapped_column(Text, nullable=False)
    provider_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    headquarters_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    headquarters_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    services_offered: Mapped[str | None] = mapped_column(Text, nullable=True)
    sector_expertise: Mapped[str | None] = mapped_column(Text, nullable=True)
    geographic_coverage: Mapped[str | None] = mapped_column(Text, nullable=True)
    founded_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")


class EntityPortfolioCompany(EntityRecordMixin, Base):
    __tablename__ = "entities_portfolio_company"

    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    company_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    headquarters_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    headquarters_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    primary_industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    business_model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    founded_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")


class EntityDeal(EntityRecordMixin, Base):
    __tablename__ = "entities_deal"

    deal_name: Mapped[str] = mapped_column(Text, nullable=False)
    deal_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deal_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    deal_round: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deal_amount: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deal_currency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    deal_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    target_company: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_company_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    acquirer_company: Mapped[str | None] = mapped_column(Text, nullable=True)
    acquirer_company_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    sector: Mapped[str | None] = mapped_column(String(128), nullable=True)
    asset_class: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class EntityContact(EntityRecordMixin, Base):
    __tablename__ = "entities_contact"

    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    linked_entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    linked_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")


class Relationship(Base):
    __tablename__ = "relationships"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    from_entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    from_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    from_entity_name_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    to_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    to_entity_name_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    relationship_type: Mapped[str] = mapped_column(String(64), nullable=False)
    relationship_status: Mapped[str] = mapped_column(String(32), nullable=False, default="Active", server_default="Active")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_relationships_org_id", "org_id"),
        Index("ix_relationships_from", "from_entity_type", "from_entity_id"),
        Index("ix_relationships_to", "to_entity_type", "to_entity_id"),
    )


class EntitiesProject(Base):
    __tablename__ = "entities_project"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_type: Mapped[str] = mapped_column(String(32), nullable=False, default="research", server_default="research")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_entities_project_org_id", "org_id"),)


class EntitiesProjectItem(Base):
    __tablename__ = "entities_project_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("entities_project.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    entity_name_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    task_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_entities_project_items_org_id", "org_id"),
        Index("ix_entities_project_items_project_id", "project_id"),
        Index("ix_entities_project_items_assigned_to", "assigned_to"),
    )


class EntitiesProjectMember(Base):
    __tablename__ = "entities_project_members"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("entities_project.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="member", server_default="member")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_entities_project_member"),
        Index("ix_entities_project_members_user_id", "user_id"),
    )
