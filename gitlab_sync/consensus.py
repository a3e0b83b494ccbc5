"""Turn award emoji on a merge request into a compliance verdict."""

import logging
from typing import Dict, Iterable, List, Mapping, Set

from gitlab_sync.models import STATUS_MARKERS, Award, MarkerKind, Verdict

logger = logging.getLogger(__name__)


def _casefold_eq(a, b):
    """Case-insensitive string comparison (handles None)."""
    if a is None or b is None:
        return False
    return a.casefold() == b.casefold()


def effective_threshold(teams: Mapping[str, Iterable[str]], votes: int = 0) -> int:
    """Approvals each team must reach.

    An explicit override wins; otherwise a single team (or none) needs two
    approvals and two or more teams need one each.
    """
    if votes > 0:
        return votes
    if len(teams) < 2:
        return 2
    return 1


def evaluate_awards(
        awards: List[Award],
        author: str,
        teams: Mapping[str, Iterable[str]],
        threshold: int,
        award_kinds: Mapping[str, MarkerKind],
        service_account: str,
) -> Verdict:
    """
    Build the verdict for one merge request.

    Awards by the MR author are ignored. Awards placed by the service account
    are the bot's own markers: they are recorded in ``verdict.markers`` and
    never count as approval or rejection. Every other "like" counts once per
    reactor for each team the reactor belongs to, and any "dislike" marks
    the MR as disliked.

    The result does not depend on the order of ``awards``.
    """
    verdict = Verdict()
    approvers: Dict[str, Set[str]] = {team: set() for team in teams}
    members = {team: {m.casefold() for m in users} for team, users in teams.items()}

    for award in awards:
        kind = award_kinds.get(award.name)
        if kind is None:
            continue

        if _casefold_eq(award.user, service_account):
            if kind in STATUS_MARKERS:
                current = verdict.markers[kind]
                verdict.markers[kind] = award.id if not current else min(current, award.id)
            continue

        if _casefold_eq(award.user, author):
            continue

        if kind is MarkerKind.LIKE:
            reactor = award.user.casefold()
            for team, users in members.items():
                if reactor in users:
                    approvers[team].add(reactor)
        elif kind is MarkerKind.DISLIKE:
            verdict.disliked = True

    verdict.team_counts = {team: min(len(users), threshold) for team, users in approvers.items()}
    verdict.liked = all(count >= threshold for count in verdict.team_counts.values())

    for team, count in sorted(verdict.team_counts.items()):
        logger.debug("team: %s = %s/%s", team, count, threshold)
    logger.debug("liked=%s  disliked=%s  markers=%s",
                 verdict.liked, verdict.disliked,
                 {k.value: v for k, v in verdict.markers.items()})

    return verdict
