"""
Marker state machine.

A verdict decides which status markers a merge request should carry; the
reconciler compares that with the markers already placed and emits only the
difference. Applying the emitted actions and reconciling again yields no
actions.
"""

import logging
from typing import Dict, List

from gitlab_sync.models import STATUS_MARKERS, MarkerAction, MarkerKind, MergeRequest, MRState, Op, Verdict

logger = logging.getLogger(__name__)


def desired_open(verdict: Verdict) -> Dict[MarkerKind, Op]:
    if verdict.liked and not verdict.disliked:
        logger.debug("-> OPEN RULE 1: LIKED  ready=apply  not_ready=remove")
        return {
            MarkerKind.READY: Op.APPLY,
            MarkerKind.NOT_READY: Op.REMOVE,
            MarkerKind.NON_COMPLIANT: Op.REMOVE,
        }
    logger.debug("-> OPEN RULE 2: NOT LIKED OR DISLIKED  ready=remove  not_ready=apply")
    return {
        MarkerKind.READY: Op.REMOVE,
        MarkerKind.NOT_READY: Op.APPLY,
        MarkerKind.NON_COMPLIANT: Op.REMOVE,
    }


def desired_merged(verdict: Verdict) -> Dict[MarkerKind, Op]:
    if verdict.disliked or not verdict.liked:
        logger.debug("-> MERGED RULE 1: DISLIKED OR NOT LIKED  non_compliant=apply")
        non_compliant = Op.APPLY
    else:
        logger.debug("-> MERGED RULE 2: COMPLIANT  non_compliant=remove")
        non_compliant = Op.REMOVE
    return {
        MarkerKind.READY: Op.REMOVE,
        MarkerKind.NOT_READY: Op.REMOVE,
        MarkerKind.NON_COMPLIANT: non_compliant,
    }


def reconcile(mr: MergeRequest) -> List[MarkerAction]:
    """Return the minimal list of marker actions for one merge request."""
    if mr.state is MRState.MERGED:
        desired = desired_merged(mr.verdict)
    else:
        desired = desired_open(mr.verdict)

    actions = []
    for kind in STATUS_MARKERS:
        existing = mr.verdict.markers.get(kind, 0)
        op = desired[kind]
        if op is Op.APPLY and existing == 0:
            if kind is MarkerKind.NON_COMPLIANT:
                actions.append(MarkerAction(mr.project_id, mr.iid, kind, Op.APPLY,
                                            merged_by=mr.merged_by, path=mr.web_url))
            else:
                actions.append(MarkerAction(mr.project_id, mr.iid, kind, Op.APPLY))
        elif op is Op.REMOVE and existing != 0:
            actions.append(MarkerAction(mr.project_id, mr.iid, kind, Op.REMOVE, award_id=existing))

    logger.debug("MR !%s@%s (%s): %s", mr.iid, mr.project_id, mr.state.value,
                 [a.describe() for a in actions] or "up to date")
    return actions
