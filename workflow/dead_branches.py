"""
Dead branch detection.

A branch is dead when it is not protected and its last commit is at least
seven days old. Dead branches are collected twice: per project (for the
owners) and per canonical author email (for the authors).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional

from directory.ldap_client import DirectoryError
from gitlab_sync.client import Branch, ForgeError, GitLabClient
from gitlab_sync.workflow_config import ProjectPolicy
from workflow.caches import IdentityCache, ProjectInfoCache

logger = logging.getLogger(__name__)

DEAD_AFTER = timedelta(days=7)


@dataclass
class DeadBranch:
    author: str  # display name of the resolved author
    age: int  # whole days since the last commit


@dataclass
class ProjectReport:
    name: str
    url: str
    owners: List[str]
    branches: Dict[str, DeadBranch] = field(default_factory=dict)  # branch name -> info

    def sorted_branches(self):
        return sorted(self.branches.items())


@dataclass
class AuthorReport:
    name: str
    branches: Dict[int, List[str]] = field(default_factory=dict)  # project id -> branch names

    def sorted_branches(self):
        return [(pid, sorted(names)) for pid, names in sorted(self.branches.items())]


@dataclass
class DeadBranchReport:
    projects: Dict[int, ProjectReport] = field(default_factory=dict)
    authors: Dict[str, AuthorReport] = field(default_factory=dict)  # canonical email -> report

    def sorted_projects(self):
        return sorted(self.projects.items())

    def sorted_authors(self):
        return sorted(self.authors.items())

    @property
    def branch_count(self) -> int:
        return sum(len(p.branches) for p in self.projects.values())


def branch_age(branch: Branch, now: datetime) -> Optional[int]:
    """Age in whole days if the branch is dead, otherwise None."""
    elapsed = now - branch.authored_date
    if elapsed < DEAD_AFTER:
        return None
    return int(elapsed.total_seconds() // 3600) // 24


def detect_dead_branches(
        client: GitLabClient,
        projects: Mapping[int, ProjectPolicy],
        identities: IdentityCache,
        project_info: ProjectInfoCache,
        now: Optional[datetime] = None,
) -> DeadBranchReport:
    now = now or datetime.now(timezone.utc)
    report = DeadBranchReport()

    for pid in sorted(projects):
        try:
            for branch in client.iter_branches(pid):
                if branch.protected:
                    continue

                age = branch_age(branch, now)
                if age is None:
                    logger.debug("branch %s@%s: alive", branch.name, pid)
                    continue

                try:
                    author = identities.resolve(branch.author_name, branch.author_email)
                except DirectoryError as e:
                    logger.error("Skipping dead branch %s@%s: cannot resolve %s: %s",
                                 branch.name, pid, branch.author_email, e)
                    continue

                author_report = report.authors.setdefault(author.email, AuthorReport(name=author.name))
                author_report.branches.setdefault(pid, []).append(branch.name)

                project_report = report.projects.get(pid)
                if project_report is None:
                    info = project_info.get(pid)
                    project_report = ProjectReport(name=info.name, url=info.url, owners=projects[pid].owners)
                    report.projects[pid] = project_report
                project_report.branches[branch.name] = DeadBranch(author=author.name, age=age)
                logger.debug("branch %s@%s: dead for %s days, author %s", branch.name, pid, age, author.email)
        except ForgeError as e:
            logger.error("Failed to list branches for %s: %s", pid, e)

    logger.info("Found %s dead branches in %s projects from %s authors",
                report.branch_count, len(report.projects), len(report.authors))
    return report
