from __future__ import annotations

from annonest.annotate.models import AnnotationTask, LabelProject, NewsArticle, NewsEntityLink
from annonest.platform.security.repository import BaseRepository


class LabelProjectRepository(BaseRepository[LabelProject]):
    resource = "project"
    model = LabelProject


class AnnotationTaskRepository(BaseRepository[AnnotationTask]):
    resource = "task"
    model = AnnotationTask


class NewsArticleRepository(BaseRepository[NewsArticle]):
    resource = "news article"
    model = NewsArticle


class NewsEntityLinkRepository(BaseRepository[NewsEntityLink]):
    resource = "entity link"
    model = NewsEntityLink
