"""
Merge request policy sync.

For every configured project:
1. Fetches open and merged MRs that target a protected branch
2. Computes each MR's verdict from its award emoji
3. Reconciles the verdict with the markers already on the MR

The returned actions are handed to the executor; nothing is stored between
runs.
"""

import logging
from typing import List

from gitlab_sync.client import ForgeError, GitLabClient
from gitlab_sync.consensus import effective_threshold, evaluate_awards
from gitlab_sync.models import MarkerAction, MergeRequest, MRState
from gitlab_sync.reconcile import reconcile
from gitlab_sync.workflow_config import ProjectPolicy, WardConfig

logger = logging.getLogger(__name__)


def evaluate_project(client: GitLabClient, cfg: WardConfig, project: ProjectPolicy) -> List[MarkerAction]:
    """Evaluate one project. Returns the marker actions it needs."""
    threshold = effective_threshold(project.teams, project.votes)
    logger.debug("Project %s: %s teams, threshold %s", project.id, len(project.teams), threshold)

    protected = client.list_protected_branches(project.id)

    actions = []
    for state in (MRState.OPENED, MRState.MERGED):
        for mr in client.list_merge_requests(project.id, state):
            if mr.target_branch not in protected:
                logger.debug("MR !%s@%s: target %s not protected, skipped", mr.iid, project.id, mr.target_branch)
                continue
            try:
                evaluate_merge_request(client, cfg, project, mr, threshold)
            except ForgeError as e:
                logger.error("Failed to list awards for MR !%s@%s: %s", mr.iid, project.id, e)
                continue
            actions.extend(reconcile(mr))
    return actions


def evaluate_merge_request(client: GitLabClient, cfg: WardConfig, project: ProjectPolicy,
                           mr: MergeRequest, threshold: int) -> MergeRequest:
    awards = client.list_awards(project.id, mr.iid)
    mr.verdict = evaluate_awards(
        awards,
        author=mr.author,
        teams=project.teams,
        threshold=threshold,
        award_kinds=cfg.awards,
        service_account=cfg.service_account,
    )
    return mr


def sync(client: GitLabClient, cfg: WardConfig) -> List[MarkerAction]:
    """Evaluate every configured project. Projects are independent."""
    actions = []
    errors = []

    for pid in sorted(cfg.projects):
        try:
            project_actions = evaluate_project(client, cfg, cfg.projects[pid])
        except ForgeError as e:
            errors.append(f"{pid}: {e}")
            logger.error("Error evaluating project %s: %s", pid, e)
            continue
        logger.info("Project %s: %s marker actions", pid, len(project_actions))
        actions.extend(project_actions)

    logger.info("Evaluation complete: %s marker actions", len(actions))
    if errors:
        logger.error("Errors: %s", len(errors))
    return actions
