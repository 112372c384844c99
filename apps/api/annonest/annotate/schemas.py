from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


LabelType = Literal["text", "image", "video", "audio", "transcription", "translation"]
ProjectCategory = Literal["general", "news", "research", "training"]
WorkContext = Literal["internal", "client"]
TaskStatus = Literal["pending", "in_progress", "review", "completed"]
ArticleState = Literal["pending", "completed", "not_relevant"]
RelevanceStatus = Literal["relevant", "not_relevant"]

NewsFirmType = Literal[
    "gp_pe",
    "gp_vc",
    "lp",
    "fund",
    "portfolio_company",
    "service_provider",
    "bank_trustee",
    "regulator",
    "startup",
    "corporate",
]
NewsEventType = Literal[
    "fundraise",
    "investment",
    "exit",
    "mna",
    "leadership_change",
    "regulatory_update",
    "product_launch",
    "partnership",
    "financial_results",
    "litigation",
]
NewsAssetClass = Literal[
    "private_equity",
    "venture_capital",
    "private_debt",
    "infrastructure",
    "real_assets",
    "hedge_funds",
    "public_markets",
    "esg",
]
NewsActionType = Literal["add_new_profile", "update_existing_profile", "no_new_information"]


class TaggedEntity(BaseModel):
    entity_id: str
    entity_name: str
    entity_type: str


# Copied from the article at upload time; metadata patches cannot change them.
UPLOAD_OWNED_FIELDS = frozenset(
    {"headline", "url", "source_name", "publish_date", "raw_text", "cleaned_text", "language", "news_id"}
)


class NewsTaskMetadata(BaseModel):
    kind: Literal["news"] = "news"
    headline: str | None = None
    url: str | None = None
    source_name: str | None = None
    publish_date: str | None = None
    raw_text: str | None = None
    cleaned_text: str | None = None
    language: str | None = None
    news_id: UUID | None = None
    relevance_status: RelevanceStatus | None = None
    relevance_notes: str | None = None
    firm_type: list[NewsFirmType] = Field(default_factory=list)
    event_type: list[NewsEventType] = Field(default_factory=list)
    asset_class: list[NewsAssetClass] = Field(default_factory=list)
    action_type: list[NewsActionType] = Field(default_factory=list)
    tagged_entities: list[TaggedEntity] = Field(default_factory=list)
    created_entities: list[TaggedEntity] = Field(default_factory=list)

    def completion_problem(self) -> str | None:
        if self.relevance_status == "not_relevant":
            return None
        if not self.action_type:
            return "at least one action_type is required before completing a relevant news task"
        return None


class GenericTaskMetadata(BaseModel):
    kind: Literal["generic"] = "generic"
    labels: list[str] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)

    def completion_problem(self) -> str | None:
        return None


TaskMetadata = Annotated[NewsTaskMetadata | GenericTaskMetadata, Field(discriminator="kind")]
task_metadata_adapter: TypeAdapter[NewsTaskMetadata | GenericTaskMetadata] = TypeAdapter(TaskMetadata)


def metadata_kind_for(project_category: str) -> str:
    return "news" if project_category == "news" else "generic"


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    label_type: LabelType
    project_category: ProjectCategory = "general"
    work_context: WorkContext = "internal"


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    name: str
    label_type: str
    project_category: str
    work_context: str
    created_by: UUID | None
    created_at: datetime
    task_counts: dict[str, int] = Field(default_factory=dict)


class TaskRead(BaseModel):
    id: UUID
    project_id: UUID
    assigned_to: UUID | None
    status: TaskStatus
    metadata: TaskMetadata
    row_version: int
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    assigned_to: UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskTransitionRequest(BaseModel):
    row_version: int | None = None
    metadata: dict[str, Any] | None = None


class TaskMetadataUpdate(BaseModel):
    row_version: int
    metadata: dict[str, Any]


class TaskAssignRequest(BaseModel):
    user_id: UUID | None = None


class BulkAssignRequest(BaseModel):
    task_ids: list[UUID] = Field(min_length=1)
    user_id: UUID


class AssignEvenlyRequest(BaseModel):
    task_ids: list[UUID] = Field(min_length=1)
    user_ids: list[UUID] = Field(min_length=1)


class ArticleInput(BaseModel):
    headline: str = ""
    url: str | None = None
    source_name: str | None = None
    publish_date: str | None = None
    raw_text: str = ""
    cleaned_text: str | None = None
    language: str | None = None
    article_state: ArticleState = "pending"


class ArticlesUploadRequest(BaseModel):
    articles: list[ArticleInput]
    assignees: list[UUID] = Field(default_factory=list)


class UploadResult(BaseModel):
    articles: int
    tasks_created: int
    skipped_rows: int
    message: str


class EntityLinkCreate(BaseModel):
    entity_type: str = Field(min_length=1)
    entity_id: UUID


class EntityLinkRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    news_id: UUID
    entity_type: str
    entity_id: UUID
    created_by: UUID | None
    created_at: datetime
