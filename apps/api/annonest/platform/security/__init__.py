from annonest.platform.security.context import AuthContext
from annonest.platform.security.repository import BaseRepository
from annonest.platform.security.tenancy import apply_tenant_filter

__all__ = ["AuthContext", "BaseRepository", "apply_tenant_filter"]
