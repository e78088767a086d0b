"""Organization scoping.

Members of the main organization, super admins and holders of a role that
applies to all organizations can see data from every organization. Everyone
else is limited to their own. The main organization id is looked up once
and cached.
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import Session

from ums.core.cache import TTLCache
from ums.core.config import get_settings
from ums.db.models import Organization

logger = logging.getLogger(__name__)

MAIN_ORGANIZATION_KEY = "main_organization_id"


class OrganizationDirectory:
    """Resolves which organizations an actor may see."""

    def __init__(self, db: Session, cache: TTLCache, main_organization_code: Optional[str] = None):
        self.db = db
        self.cache = cache
        self.main_organization_code = main_organization_code

    def main_organization_id(self) -> Optional[int]:
        return self.cache.get_or_load(MAIN_ORGANIZATION_KEY, self._load_main_organization_id)

    def can_access_all(self, actor) -> bool:
        if actor.is_super_admin or actor.all_organizations:
            return True
        main_id = self.main_organization_id()
        return main_id is not None and actor.organization_id == main_id

    def scope_organization_id(self, actor) -> Optional[int]:
        """Organization to restrict listings to, or ``None`` for no restriction."""
        if self.can_access_all(actor):
            return None
        return actor.organization_id

    def invalidate(self) -> None:
        self.cache.invalidate(MAIN_ORGANIZATION_KEY)

    def _load_main_organization_id(self) -> Optional[int]:
        query = self.db.query(Organization.id)
        if self.main_organization_code:
            row = query.filter(Organization.code == self.main_organization_code).first()
        else:
            row = query.filter(Organization.is_main.is_(True)).order_by(Organization.id.asc()).first()
        if row is None:
            logger.warning("No main organization configured")
            return None
        return row[0]


@lru_cache
def get_organization_cache() -> TTLCache:
    """Cache instance shared by request-scoped directories."""
    return TTLCache(get_settings().organization_cache_ttl_seconds)


def get_organization_directory(db: Session) -> OrganizationDirectory:
    settings = get_settings()
    return OrganizationDirectory(db, get_organization_cache(), settings.main_organization_code)
