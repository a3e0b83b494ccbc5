#!/usr/bin/env python3
"""ward-bot: enforce merge request approval policy and report dead branches.

One invocation is one run; schedule it with cron.
"""

import argparse
import logging
import sys

from directory import IdentityResolver, LdapDirectory
from gitlab_sync import mr_sync
from gitlab_sync.client import GitLabClient
from gitlab_sync.workflow_config import ConfigError, load_config
from notify import Mailer
from notify.reports import send_dead_branch_reports
from workflow.caches import IdentityCache, ProjectInfoCache
from workflow.dead_branches import detect_dead_branches
from workflow.tasks import ActionExecutor

logger = logging.getLogger("ward_bot")


def run_mr(cfg, dry_run=False) -> int:
    logger.info("Start merge request sync")
    client = GitLabClient.from_config(cfg)
    actions = mr_sync.sync(client, cfg)

    if dry_run:
        for action in actions:
            logger.info("[DRY RUN] Would %s", action.describe())
        return 0

    directory = LdapDirectory.from_config(cfg)
    executor = ActionExecutor(
        client, cfg,
        resolver=IdentityResolver(directory),
        directory=directory,
        mailer=Mailer.from_config(cfg),
        project_info=ProjectInfoCache(client),
    )
    executor.execute(actions)
    logger.info("End merge request sync")
    return 0


def run_dead(cfg, notify=False) -> int:
    logger.info("Start dead branch detection")
    client = GitLabClient.from_config(cfg)
    directory = LdapDirectory.from_config(cfg)
    report = detect_dead_branches(
        client, cfg.projects,
        identities=IdentityCache(IdentityResolver(directory)),
        project_info=ProjectInfoCache(client),
    )

    for pid, project in report.sorted_projects():
        for name, branch in project.sorted_branches():
            logger.info("%s (%s): %s by %s, %s days", project.name, pid, name, branch.author, branch.age)

    if notify:
        sent = send_dead_branch_reports(report, Mailer.from_config(cfg), directory)
        logger.info("Sent %s author and %s project reports, %s failed",
                    sent["authors"], sent["projects"], sent["failed"])
    logger.info("End dead branch detection")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ward-bot", description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="path to ward_config.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    mr = sub.add_parser("mr", help="evaluate merge requests and sync their markers")
    mr.add_argument("--dry-run", action="store_true", help="log marker actions without applying them")

    dead = sub.add_parser("dead", help="detect dead branches")
    dead.add_argument("--notify", action="store_true", help="mail reports to authors and owners")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(format='%(asctime)-15s %(levelname)-8s %(name)s %(message)s',
                        level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if args.command == "mr":
        return run_mr(cfg, dry_run=args.dry_run)
    return run_dead(cfg, notify=args.notify)


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
