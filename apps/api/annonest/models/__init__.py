from annonest.annotate.models import AnnotationTask, LabelProject, NewsArticle, NewsEntityLink
from annonest.datanest.models import (
    EntitiesProject,
    EntitiesProjectItem,
    EntitiesProjectMember,
    EntityContact,
    EntityDeal,
    EntityFund,
    EntityGp,
    EntityLp,
    EntityPortfolioCompany,
    EntityServiceProvider,
    Relationship,
)
from annonest.identity.models import Organization, User
from annonest.locks.models import EntityEditLock
from annonest.models.audit import AuditLog

__all__ = [
    "AnnotationTask",
    "AuditLog",
    "EntitiesProject",
    "EntitiesProjectItem",
    "EntitiesProjectMember",
    "EntityContact",
    "EntityDeal",
    "EntityEditLock",
    "EntityFund",
    "EntityGp",
    "EntityLp",
    "EntityPortfolioCompany",
    "EntityServiceProvider",
    "LabelProject",
    "NewsArticle",
    "NewsEntityLink",
    "Organization",
    "Relationship",
    "User",
]
