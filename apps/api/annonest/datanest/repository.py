from __future__ import annotations

from annonest.datanest.models import EntitiesProject, EntitiesProjectItem, EntitiesProjectMember, Relationship
from annonest.platform.security.repository import BaseRepository


class EntitiesProjectRepository(BaseRepository[EntitiesProject]):
    resource = "project"
    model = EntitiesProject


class ProjectItemRepository(BaseRepository[EntitiesProjectItem]):
    resource = "project item"
    model = EntitiesProjectItem


class ProjectMemberRepository(BaseRepository[EntitiesProjectMember]):
    resource = "project member"
    model = EntitiesProjectMember


class RelationshipRepository(BaseRepository[Relationship]):
    resource = "relationship"
    model = Relationship
