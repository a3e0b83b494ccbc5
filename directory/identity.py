"""Resolve a raw commit author to an organizational identity.

The stages run in order and stop at the first hit:

  1. the commit email exists in the directory as a mail address
  2. the local part of the commit email is a directory username
  3. the commit author name is a directory username
  4. nothing matched: the sentinel identity

Stage 4 always succeeds, so one unknown author never blocks a batch.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger(__name__)

UNIDENTIFIED_EMAIL = "unidentified@any.local"
UNIDENTIFIED_NAME = "Unidentified"


class Stage(IntEnum):
    EXACT_MAIL = 1
    EMAIL_USERNAME = 2
    NAME_USERNAME = 3
    UNIDENTIFIED = 4


@dataclass(frozen=True)
class Identity:
    email: str
    name: str
    stage: Stage

    @property
    def unidentified(self) -> bool:
        return self.stage is Stage.UNIDENTIFIED


class IdentityResolver:
    def __init__(self, directory):
        self.directory = directory

    def resolve(self, raw_name: str, raw_email: str) -> Identity:
        """Map a commit (name, email) pair to a canonical identity.

        Directory errors propagate; empty results move on to the next stage.
        """
        if raw_email and self.directory.lookup_by_mail(raw_email):
            return Identity(raw_email, raw_name, Stage.EXACT_MAIL)

        username = raw_email.split("@", 1)[0] if raw_email else ""
        if username:
            mails = self.directory.lookup_by_usernames([username])
            if mails:
                return Identity(mails[0], raw_name, Stage.EMAIL_USERNAME)

        if raw_name:
            mails = self.directory.lookup_by_usernames([raw_name])
            if mails:
                return Identity(mails[0], raw_name, Stage.NAME_USERNAME)

        logger.warning("Unidentified author: %s - %s", raw_name, raw_email)
        return Identity(UNIDENTIFIED_EMAIL, UNIDENTIFIED_NAME, Stage.UNIDENTIFIED)
