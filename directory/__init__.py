from directory.identity import UNIDENTIFIED_EMAIL, Identity, IdentityResolver, Stage
from directory.ldap_client import DirectoryError, LdapDirectory

__all__ = [
    "DirectoryError",
    "Identity",
    "IdentityResolver",
    "LdapDirectory",
    "Stage",
    "UNIDENTIFIED_EMAIL",
]
