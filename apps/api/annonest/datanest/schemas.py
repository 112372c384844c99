from __future__ import annotations

from datetime import datetime
from typing import Literal
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from annonest.datanest.models import SOURCE_TYPES


EntityType = Literal["gp", "lp", "fund", "service_provider", "portfolio_company", "deal", "contact"]
ProjectType = Literal["research", "data_enrichment", "verification", "outreach", "custom"]
ProjectStatus = Literal["active", "paused", "completed", "archived"]
ItemStatus = Literal["pending", "in_progress", "completed", "blocked"]

MAX_SOURCES = 5


class ProvenanceFields(BaseModel):
    sources_used: list[str] | None = None
    source_urls: list[str] | None = None

    @field_validator("sources_used")
    @classmethod
    def _check_sources(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        if len(value) > MAX_SOURCES:
            raise ValueError(f"at most {MAX_SOURCES} sources are allowed")
        unknown = [item for item in value if item not in SOURCE_TYPES]
        if unknown:
            raise ValueError(f"unknown source types: {', '.join(unknown)}")
        return value

    @field_validator("source_urls")
    @classmethod
    def _check_urls(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        if len(value) > MAX_SOURCES:
            raise ValueError(f"at most {MAX_SOURCES} source URLs are allowed")
        cleaned: list[str] = []
        for raw in value:
            candidate = raw.strip()
            parsed = urlparse(candidate)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"invalid URL: {raw}")
            cleaned.append(candidate)
        return cleaned


class EntityReadBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    sources_used: list[str]
    source_urls: list[str]
    last_updated_by: UUID | None
    last_updated_on: datetime | None
    created_at: datetime
    updated_at: datetime


class _GpFields(BaseModel):
    gp_legal_name: str | None = None
    firm_type: str | None = None
    headquarters_country: str | None = None
    headquarters_city: str | None = None
    total_aum: str | None = None
    aum_currency: str | None = None
    website: str | None = None
    primary_asset_classes: str | None = None
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    status: str | None = None


class GpCreate(_GpFields, ProvenanceFields):
    gp_name: str = Field(min_length=1)


class GpUpdate(_GpFields, ProvenanceFields):
    gp_name: str | None = Field(default=None, min_length=1)


class GpRead(_GpFields, EntityReadBase):
    gp_name: str


class _LpFields(BaseModel):
    lp_legal_name: str | None = None
    firm_type: str | None = None
    investor_type: str | None = None
    headquarters_country: str | None = None
    headquarters_city: str | None = None
    total_aum: str | None = None
    aum_currency: str | None = None
    website: str | None = None
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    status: str | None = None


class LpCreate(_LpFields, ProvenanceFields):
    lp_name: str = Field(min_length=1)


class LpUpdate(_LpFields, ProvenanceFields):
    lp_name: str | None = Field(default=None, min_length=1)


class LpRead(_LpFields, EntityReadBase):
    lp_name: str


class _FundFields(BaseModel):
    gp_id: UUID | None = None
    fund_type: str | None = None
    vintage_year: int | None = Field(default=None, ge=1900, le=2100)
    fund_size: str | None = None
    fund_currency: str | None = None
    target_size: str | None = None
    fund_status: str | None = None
    primary_sector: str | None = None
    geographic_focus: str | None = None


class FundCreate(_FundFields, ProvenanceFields):
    fund_name: str = Field(min_length=1)


class FundUpdate(_FundFields, ProvenanceFields):
    fund_name: str | None = Field(default=None, min_length=1)


class FundRead(_FundFields, EntityReadBase):
    fund_name: str


class _ServiceProviderFields(BaseModel):
    provider_type: str | None = None
    headquarters_country: str | None = None
    headquarters_city: str | None = None
    website: str | None = None
    services_offered: str | None = None
    sector_expertise: str | None = None
    geographic_coverage: str | None = None
    founded_year: int | None = Field(default=None, ge=1800, le=2100)
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    status: str | None = None


class ServiceProviderCreate(_ServiceProviderFields, ProvenanceFields):
    provider_name: str = Field(min_length=1)


class ServiceProviderUpdate(_ServiceProviderFields, ProvenanceFields):
    provider_name: str | None = Field(default=None, min_length=1)


class ServiceProviderRead(_ServiceProviderFields, EntityReadBase):
    provider_name: str


class _PortfolioCompanyFields(BaseModel):
    company_type: str | None = None
    headquarters_country: str | None = None
    headquarters_city: str | None = None
    primary_industry: str | None = None
    business_model: str | None = None
    website: str | None = None
    business_description: str | None = None
    founded_year: int | None = Field(default=None, ge=1800, le=2100)
    employee_count: int | None = Field(default=None, ge=0)
    status: str | None = None


class PortfolioCompanyCreate(_PortfolioCompanyFields, ProvenanceFields):
    company_name: str = Field(min_length=1)


class PortfolioCompanyUpdate(_PortfolioCompanyFields, ProvenanceFields):
    company_name: str | None = Field(default=None, min_length=1)


class PortfolioCompanyRead(_PortfolioCompanyFields, EntityReadBase):
    company_name: str


class _DealFields(BaseModel):
    deal_type: str | None = None
    deal_status: str | None = None
    deal_round: str | None = None
    deal_amount: str | None = None
    deal_currency: str | None = None
    deal_date: str | None = None
    target_company: str | None = None
    target_company_id: UUID | None = None
    acquirer_company: str | None = None
    acquirer_company_id: UUID | None = None
    sector: str | None = None
    asset_class: str | None = None
    notes: str | None = None


class DealCreate(_DealFields, ProvenanceFields):
    deal_name: str = Field(min_length=1)


class DealUpdate(_DealFields, ProvenanceFields):
    deal_name: str | None = Field(default=None, min_length=1)


class DealRead(_DealFields, EntityReadBase):
    deal_name: str


class _ContactFields(BaseModel):
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    company_name: str | None = None
    linked_entity_type: EntityType | None = None
    linked_entity_id: UUID | None = None
    linkedin_url: str | None = None
    notes: str | None = None
    status: str | None = None


class ContactCreate(_ContactFields, ProvenanceFields):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)


class ContactUpdate(_ContactFields, ProvenanceFields):
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = Field(default=None, min_length=1)


class ContactRead(_ContactFields, EntityReadBase):
    first_name: str
    last_name: str


class RelationshipCreate(BaseModel):
    from_entity_type: EntityType
    from_entity_id: UUID
    to_entity_type: EntityType
    to_entity_id: UUID
    relationship_type: str = Field(min_length=1, max_length=64)
    relationship_status: str = "Active"
    notes: str | None = None


class RelationshipRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    from_entity_type: str
    from_entity_id: UUID
    from_entity_name_snapshot: str | None
    to_entity_type: str
    to_entity_id: UUID
    to_entity_name_snapshot: str | None
    relationship_type: str
    relationship_status: str
    notes: str | None
    created_by: UUID | None
    created_at: datetime


class EntitiesProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    project_type: ProjectType = "research"
    description: str | None = None


class EntitiesProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    project_type: str
    description: str | None
    status: str
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime
    item_counts: dict[str, int] = Field(default_factory=dict)


class ProjectMemberCreate(BaseModel):
    user_id: UUID
    role: str = "member"


class ProjectMemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    user_id: UUID
    role: str
    created_at: datetime


class ProjectItemCreate(BaseModel):
    entity_type: EntityType
    entity_id: UUID
    assigned_to: UUID | None = None
    notes: str | None = None


class ProjectItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    entity_type: str
    entity_id: UUID
    entity_name_snapshot: str | None
    assigned_to: UUID | None
    task_status: ItemStatus
    notes: str | None
    row_version: int
    created_at: datetime
    updated_at: datetime


class ProjectItemTransitionRequest(BaseModel):
    row_version: int | None = None
    notes: str | None = None


class ProjectItemAssignRequest(BaseModel):
    user_id: UUID | None = None
