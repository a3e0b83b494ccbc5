"""Data models shared by the merge request evaluation pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class MarkerKind(Enum):
    READY = "ready"
    NOT_READY = "not_ready"
    NON_COMPLIANT = "non_compliant"
    LIKE = "like"  # Reviewer approval signal
    DISLIKE = "dislike"  # Reviewer rejection signal


# Kinds the bot itself places on merge requests, in reconciliation order.
STATUS_MARKERS = (MarkerKind.READY, MarkerKind.NOT_READY, MarkerKind.NON_COMPLIANT)


class MRState(Enum):
    OPENED = "opened"
    MERGED = "merged"


class Op(Enum):
    APPLY = "apply"
    REMOVE = "remove"


@dataclass
class Award:
    user: str  # username of the reactor
    name: str  # emoji name as configured on the forge
    id: int


@dataclass
class Verdict:
    liked: bool = False
    disliked: bool = False
    # {MarkerKind: award id}; 0 means the bot has not placed the marker
    markers: Dict[MarkerKind, int] = field(
        default_factory=lambda: {kind: 0 for kind in STATUS_MARKERS}
    )
    team_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class MergeRequest:
    project_id: int
    iid: int
    state: MRState
    target_branch: str
    author: str
    web_url: str
    merged_by: Optional[str] = None
    verdict: Verdict = field(default_factory=Verdict)


@dataclass(frozen=True)
class MarkerAction:
    project_id: int
    mr_iid: int
    kind: MarkerKind
    op: Op
    award_id: int = 0  # set for REMOVE
    merged_by: Optional[str] = None  # set for NON_COMPLIANT APPLY
    path: Optional[str] = None

    def describe(self) -> str:
        return f"{self.op.value} {self.kind.value} on !{self.mr_iid}@{self.project_id}"
