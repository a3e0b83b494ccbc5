"""Render and mail the dead branch reports."""

import logging
from typing import Dict

from jinja2 import Environment, PackageLoader, select_autoescape

from directory.identity import UNIDENTIFIED_EMAIL
from directory.ldap_client import DirectoryError
from workflow.dead_branches import AuthorReport, DeadBranchReport, ProjectReport

logger = logging.getLogger(__name__)

AUTHOR_SUBJECT = "Dead branches report"

_env = Environment(
    loader=PackageLoader("notify", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_author_report(author: AuthorReport, projects: Dict[int, ProjectReport]) -> str:
    return _env.get_template("dead_branches_author.html").render(author=author, projects=projects)


def render_project_report(project: ProjectReport) -> str:
    return _env.get_template("dead_branches_project.html").render(project=project)


def send_dead_branch_reports(report: DeadBranchReport, mailer, directory) -> Dict[str, int]:
    """Mail every identified author their branches and every project's owners the full list."""
    sent = {"authors": 0, "projects": 0, "failed": 0}

    for email, author in report.sorted_authors():
        if email == UNIDENTIFIED_EMAIL:
            logger.info("Skipping report for %s unidentified branches",
                        sum(len(v) for v in author.branches.values()))
            continue
        result = mailer.send([email], AUTHOR_SUBJECT, render_author_report(author, report.projects))
        if result["success"]:
            sent["authors"] += 1
        else:
            sent["failed"] += 1
            logger.error("Failed to send dead branch report to %s: %s", email, result["error"])

    for pid, project in report.sorted_projects():
        try:
            owners = directory.lookup_by_usernames(project.owners)
        except DirectoryError as e:
            sent["failed"] += 1
            logger.error("Failed to look up owners of %s: %s", pid, e)
            continue
        result = mailer.send(owners, f"Dead branches in {project.name}", render_project_report(project))
        if result["success"]:
            sent["projects"] += 1
        else:
            sent["failed"] += 1
            logger.error("Failed to send dead branch report for %s: %s", pid, result["error"])

    return sent
