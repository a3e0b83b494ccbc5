"""Look up organizational mail addresses in Active Directory."""

from __future__ import annotations

import logging

from ldap3 import SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

logger = logging.getLogger(__name__)

# Enabled person accounts only (bit 2 of userAccountControl marks disabled ones).
ACTIVE_PERSON_FILTER = (
    "(&(objectClass=user)(objectCategory=person)"
    "(!(userAccountControl:1.2.840.113556.1.4.803:=2))(|{terms}))"
)


class DirectoryError(RuntimeError):
    """The directory could not be reached or queried."""


def build_filter(attribute: str, values: list[str]) -> str:
    terms = "".join(f"({attribute}={escape_filter_chars(v)})" for v in values)
    return ACTIVE_PERSON_FILTER.format(terms=terms)


class LdapDirectory:
    def __init__(self, host: str, base: str, user: str, password: str,
                 domain: str = "", port: int = 389, timeout: float = 10):
        self.host = host
        self.port = port
        self.base = base
        self.bind_user = f"{user}@{domain}" if domain else user
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg) -> "LdapDirectory":
        s = cfg.ldap
        return cls(s.host, s.base, s.user, s.password, domain=s.domain, port=s.port, timeout=s.timeout)

    def lookup_by_mail(self, email: str) -> list[str]:
        if not email:
            return []
        return self._search(build_filter("mail", [email]))

    def lookup_by_usernames(self, usernames: list[str]) -> list[str]:
        usernames = [u for u in usernames if u]
        if not usernames:
            return []
        return self._search(build_filter("sAMAccountName", usernames))

    def _search(self, search_filter: str) -> list[str]:
        try:
            server = Server(self.host, port=self.port, connect_timeout=self.timeout)
            conn = Connection(server, user=self.bind_user, password=self.password,
                              auto_bind=True, receive_timeout=self.timeout)
        except LDAPException as exc:
            raise DirectoryError(f"LDAP connection to {self.host}:{self.port} failed: {exc}") from exc

        try:
            conn.search(self.base, search_filter, search_scope=SUBTREE, attributes=["mail"])
        except LDAPException as exc:
            raise DirectoryError(f"LDAP search failed: {exc}") from exc
        finally:
            conn.unbind()

        mails = []
        for entry in conn.response or []:
            if entry.get("type") != "searchResEntry":
                continue
            value = entry.get("attributes", {}).get("mail")
            if isinstance(value, list):
                value = value[0] if value else None
            if value:
                mails.append(value)
        logger.debug("LDAP %s -> %s", search_filter, mails)
        return mails
