"""Caches that live for exactly one run. Each key is written once."""

import logging
from typing import Dict

from directory.identity import Identity, IdentityResolver
from gitlab_sync.client import ForgeError, GitLabClient, ProjectInfo

logger = logging.getLogger(__name__)


class IdentityCache:
    """raw commit email -> resolved identity"""

    def __init__(self, resolver: IdentityResolver):
        self.resolver = resolver
        self._identities: Dict[str, Identity] = {}

    def resolve(self, raw_name: str, raw_email: str) -> Identity:
        identity = self._identities.get(raw_email)
        if identity is None:
            identity = self.resolver.resolve(raw_name, raw_email)
            self._identities[raw_email] = identity
            logger.debug("identity: %s -> %s (stage %s)", raw_email, identity.email, int(identity.stage))
        return identity

    def __len__(self):
        return len(self._identities)


class ProjectInfoCache:
    """project id -> display name and url, with a fallback when GitLab fails"""

    def __init__(self, client: GitLabClient):
        self.client = client
        self._projects: Dict[int, ProjectInfo] = {}

    def get(self, project_id: int) -> ProjectInfo:
        info = self._projects.get(project_id)
        if info is None:
            try:
                info = self.client.get_project(project_id)
            except ForgeError as e:
                logger.warning("Failed to get project info for %s: %s", project_id, e)
                info = ProjectInfo(name=str(project_id), url=self.client.base_url)
            self._projects[project_id] = info
        return info
