"""Lookup table from DataNest entity type to its model, DTOs and display name."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from annonest.datanest import schemas
from annonest.datanest.models import (
    EntityContact,
    EntityDeal,
    EntityFund,
    EntityGp,
    EntityLp,
    EntityPortfolioCompany,
    EntityServiceProvider,
)


@dataclass(frozen=True, slots=True)
class EntityKind:
    entity_type: str
    model: type[Any]
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    read_schema: type[BaseModel]
    display_name: Callable[[Any], str]
    name_attr: str


ENTITY_REGISTRY: Mapping[str, EntityKind] = MappingProxyType(
    {
        "gp": EntityKind(
            "gp", EntityGp, schemas.GpCreate, schemas.GpUpdate, schemas.GpRead, lambda row: row.gp_name, "gp_name"
        ),
        "lp": EntityKind(
            "lp", EntityLp, schemas.LpCreate, schemas.LpUpdate, schemas.LpRead, lambda row: row.lp_name, "lp_name"
        ),
        "fund": EntityKind(
            "fund",
            EntityFund,
            schemas.FundCreate,
            schemas.FundUpdate,
            schemas.FundRead,
            lambda row: row.fund_name,
            "fund_name",
        ),
        "service_provider": EntityKind(
            "service_provider",
            EntityServiceProvider,
            schemas.ServiceProviderCreate,
            schemas.ServiceProviderUpdate,
            schemas.ServiceProviderRead,
            lambda row: row.provider_name,
            "provider_name",
        ),
        "portfolio_company": EntityKind(
            "portfolio_company",
            EntityPortfolioCompany,
            schemas.PortfolioCompanyCreate,
            schemas.PortfolioCompanyUpdate,
            schemas.PortfolioCompanyRead,
            lambda row: row.company_name,
            "company_name",
        ),
        "deal": EntityKind(
            "deal",
            EntityDeal,
            schemas.DealCreate,
            schemas.DealUpdate,
            schemas.DealRead,
            lambda row: row.deal_name,
            "deal_name",
        ),
        "contact": EntityKind(
            "contact",
            EntityContact,
            schemas.ContactCreate,
            schemas.ContactUpdate,
            schemas.ContactRead,
            lambda row: f"{row.first_name} {row.last_name}".strip(),
            "last_name",
        ),
    }
)
