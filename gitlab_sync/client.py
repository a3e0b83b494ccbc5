"""GitLab access for the bot, on top of python-gitlab."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

import gitlab
import requests
from gitlab.exceptions import GitlabConnectionError, GitlabError

from gitlab_sync.models import Award, MergeRequest, MRState

logger = logging.getLogger(__name__)


class ForgeError(RuntimeError):
    """Any failed call to the forge."""


class ForgeConnectionError(ForgeError):
    """The forge could not be reached."""


class ForgeNotFoundError(ForgeError):
    """The requested object does not exist (HTTP 404)."""


@dataclass(slots=True)
class Branch:
    name: str
    protected: bool
    author_name: str
    author_email: str
    authored_date: datetime


@dataclass(slots=True)
class ProjectInfo:
    name: str
    url: str


def parse_date(value: str) -> datetime:
    """Parse a GitLab ISO 8601 timestamp, accepting the 'Z' suffix."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def _forge_errors(what: str):
    """Translate python-gitlab and transport errors into ForgeError."""
    try:
        yield
    except GitlabConnectionError as exc:
        raise ForgeConnectionError(f"{what}: {exc}") from exc
    except GitlabError as exc:
        if exc.response_code == 404:
            raise ForgeNotFoundError(f"{what}: not found") from exc
        raise ForgeError(f"{what}: {exc}") from exc
    except requests.RequestException as exc:
        raise ForgeConnectionError(f"{what}: {exc}") from exc


class GitLabClient:
    def __init__(self, base_url: str, private_token: str = "", timeout: float = 30,
                 per_page: int = 20, gl: gitlab.Gitlab | None = None):
        self.base_url = base_url.rstrip("/")
        self.per_page = per_page
        self.gl = gl or gitlab.Gitlab(
            url=self.base_url,
            private_token=private_token or None,
            timeout=timeout,
            per_page=per_page,
        )

    @classmethod
    def from_config(cls, cfg) -> "GitLabClient":
        return cls(
            cfg.gitlab.url,
            private_token=cfg.gitlab.private_token,
            timeout=cfg.gitlab.timeout,
            per_page=cfg.gitlab.per_page,
        )

    def _project(self, project_id: int):
        # lazy: no request until a sub-resource is used
        return self.gl.projects.get(project_id, lazy=True)

    def _merge_request(self, project_id: int, mr_iid: int):
        return self._project(project_id).mergerequests.get(mr_iid, lazy=True)

    # ── merge requests ──────────────────────────────────────────────────

    def list_merge_requests(self, project_id: int, state: MRState) -> list[MergeRequest]:
        """Most recently updated merge requests of the project in ``state``.

        Only the first page is read; older merge requests were settled by
        earlier runs.
        """
        params = {
            "state": state.value,
            "order_by": "updated_at",
            "scope": "all",
            "per_page": self.per_page,
            "page": 1,
        }
        if state is MRState.OPENED:
            params["wip"] = "no"
        with _forge_errors(f"list {state.value} MRs of {project_id}"):
            raw = [mr.attributes for mr in self._project(project_id).mergerequests.list(get_all=False, **params)]
        return [
            MergeRequest(
                project_id=project_id,
                iid=mr["iid"],
                state=state,
                target_branch=mr.get("target_branch", ""),
                author=(mr.get("author") or {}).get("username", ""),
                web_url=mr.get("web_url", ""),
                merged_by=(mr.get("merged_by") or {}).get("username"),
            )
            for mr in raw
        ]

    def list_awards(self, project_id: int, mr_iid: int) -> list[Award]:
        with _forge_errors(f"list awards of !{mr_iid}@{project_id}"):
            raw = [a.attributes for a in self._merge_request(project_id, mr_iid).awardemojis.list(iterator=True)]
        return [Award(user=(a.get("user") or {}).get("username", ""), name=a["name"], id=a["id"])
                for a in raw]

    def create_award(self, project_id: int, mr_iid: int, name: str) -> int:
        with _forge_errors(f"create award {name} on !{mr_iid}@{project_id}"):
            award = self._merge_request(project_id, mr_iid).awardemojis.create({"name": name})
        return award.attributes.get("id", 0)

    def delete_award(self, project_id: int, mr_iid: int, award_id: int) -> None:
        with _forge_errors(f"delete award {award_id} on !{mr_iid}@{project_id}"):
            self._merge_request(project_id, mr_iid).awardemojis.delete(award_id)

    def create_note(self, project_id: int, mr_iid: int, body: str) -> None:
        with _forge_errors(f"create note on !{mr_iid}@{project_id}"):
            self._merge_request(project_id, mr_iid).notes.create({"body": body})

    # ── branches & projects ─────────────────────────────────────────────

    def list_protected_branches(self, project_id: int) -> set[str]:
        with _forge_errors(f"list protected branches of {project_id}"):
            return {pb.attributes["name"] for pb in self._project(project_id).protectedbranches.list(iterator=True)}

    def iter_branches(self, project_id: int) -> Iterator[Branch]:
        """Every branch of the project, page by page as the server links them.

        Branches whose commit date cannot be read are skipped.
        """
        with _forge_errors(f"list branches of {project_id}"):
            for b in self._project(project_id).branches.list(iterator=True, per_page=self.per_page):
                raw = b.attributes
                commit = raw.get("commit") or {}
                try:
                    authored = parse_date(commit["authored_date"])
                except (KeyError, TypeError, ValueError):
                    logger.warning("Could not parse commit date for branch %s@%s. Skipping.",
                                   raw.get("name"), project_id)
                    continue
                yield Branch(
                    name=raw["name"],
                    protected=bool(raw.get("protected")),
                    author_name=commit.get("author_name", ""),
                    author_email=commit.get("author_email", ""),
                    authored_date=authored,
                )

    def get_project(self, project_id: int) -> ProjectInfo:
        with _forge_errors(f"get project {project_id}"):
            raw = self.gl.projects.get(project_id).attributes
        name, url = raw.get("name_with_namespace"), raw.get("web_url")
        if not name or not url:
            raise ForgeError(f"get project {project_id}: incomplete project data")
        return ProjectInfo(name=name, url=url)
