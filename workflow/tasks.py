import logging
from typing import Dict, List

from directory.identity import IdentityResolver
from directory.ldap_client import DirectoryError, LdapDirectory
from gitlab_sync.client import ForgeError, GitLabClient
from gitlab_sync.models import MarkerAction, MarkerKind, Op
from gitlab_sync.workflow_config import WardConfig
from notify import messages
from notify.mailer import Mailer
from workflow.caches import ProjectInfoCache

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Applies marker actions to GitLab and sends the notifications they trigger.

    A failure on one action is logged and never stops the others.
    """

    def __init__(self, client: GitLabClient, cfg: WardConfig, resolver: IdentityResolver,
                 directory: LdapDirectory, mailer: Mailer, project_info: ProjectInfoCache):
        self.client = client
        self.cfg = cfg
        self.resolver = resolver
        self.directory = directory
        self.mailer = mailer
        self.project_info = project_info

    def execute(self, actions: List[MarkerAction]) -> Dict[str, int]:
        summary = {"applied": 0, "removed": 0, "failed": 0}
        for action in actions:
            try:
                if action.op is Op.APPLY:
                    self.client.create_award(action.project_id, action.mr_iid, self.cfg.award_name(action.kind))
                    summary["applied"] += 1
                else:
                    self.client.delete_award(action.project_id, action.mr_iid, action.award_id)
                    summary["removed"] += 1
            except ForgeError as e:
                summary["failed"] += 1
                logger.error("Failed to %s %s award (id=%s) on MR !%s@%s: %s",
                             action.op.value, action.kind.value, action.award_id,
                             action.mr_iid, action.project_id, e)
                continue
            logger.info("Done: %s", action.describe())

            if action.op is Op.APPLY and action.kind is MarkerKind.NOT_READY:
                self.notify_reviewers(action)
            elif action.op is Op.APPLY and action.kind is MarkerKind.NON_COMPLIANT:
                self.notify_non_compliant(action)

        logger.info("Applied %s, removed %s, failed %s marker actions",
                    summary["applied"], summary["removed"], summary["failed"])
        return summary

    def notify_reviewers(self, action: MarkerAction):
        teams = self.cfg.projects[action.project_id].teams
        try:
            self.client.create_note(action.project_id, action.mr_iid, messages.get_reviewers_note(teams))
        except ForgeError as e:
            logger.error("Failed to post notification message for !%s@%s: %s",
                         action.mr_iid, action.project_id, e)

    def notify_non_compliant(self, action: MarkerAction):
        logger.warning("Non-compliant MR detected: !%s@%s merged by %s",
                       action.mr_iid, action.project_id, action.merged_by)
        info = self.project_info.get(action.project_id)

        self._notify_merger(action, info)

        owners = self.cfg.projects[action.project_id].owners
        try:
            owner_emails = self.directory.lookup_by_usernames(owners)
        except DirectoryError as e:
            logger.error("Failed to look up owners of %s for MR !%s: %s", action.project_id, action.mr_iid, e)
            return
        subject, body = messages.get_owners_notice(action.path, action.mr_iid, info.url, info.name)
        self._send(owner_emails, subject, body, action, "owners")

    def _notify_merger(self, action: MarkerAction, info):
        if not action.merged_by:
            logger.warning("MR !%s@%s has no merger recorded, violation notice skipped",
                           action.mr_iid, action.project_id)
            return
        try:
            merger = self.resolver.resolve(action.merged_by, "")
        except DirectoryError as e:
            logger.error("Failed to resolve merger %s of MR !%s@%s: %s",
                         action.merged_by, action.mr_iid, action.project_id, e)
            return
        if merger.unidentified:
            logger.warning("Merger %s of MR !%s@%s not in directory, violation notice skipped",
                           action.merged_by, action.mr_iid, action.project_id)
            return
        subject, body = messages.get_violation_notice(action.path, action.mr_iid, info.url, info.name)
        self._send([merger.email], subject, body, action, "merger")

    def _send(self, recipients, subject, body, action: MarkerAction, audience: str):
        result = self.mailer.send(recipients, subject, body)
        if not result["success"]:
            logger.error("Failed to send mail to %s of MR !%s@%s (%s): %s",
                         audience, action.mr_iid, action.project_id,
                         ", ".join(result["recipients"]) or "-", result["error"])
