"""Centralized configuration loader for the ward bot.

The policy (projects, teams, award names) is validated once at load time;
any problem raises ConfigError and the run must not start.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from gitlab_sync.models import MarkerKind

CONFIG_FILE_NAME = "ward_config.json"
CONFIG_ENV_VAR = "WARD_CONFIG"

_DEFAULTS = {
    "gitlab": {"timeout": 30, "per_page": 20},
    "ldap": {"port": 389, "timeout": 10},
    "smtp": {"port": 25, "use_tls": False, "timeout": 30},
}

# Secrets may be kept out of the config file.
_SECRET_ENV_VARS = {
    ("gitlab", "private_token"): "WARD_GITLAB_TOKEN",
    ("ldap", "password"): "WARD_LDAP_PASSWORD",
    ("smtp", "password"): "WARD_SMTP_PASSWORD",
}


class ConfigError(ValueError):
    """Raised when the configuration is missing or malformed."""


@dataclass(frozen=True)
class ProjectPolicy:
    id: int
    teams: Dict[str, FrozenSet[str]]  # team name -> lower-cased usernames
    votes: int = 0  # consensus override, 0 = unset

    @property
    def owners(self) -> list:
        """Every member of every team, each listed once."""
        return sorted(set().union(*self.teams.values())) if self.teams else []


@dataclass(frozen=True)
class GitLabSettings:
    url: str
    private_token: str = ""
    timeout: float = 30
    per_page: int = 20


@dataclass(frozen=True)
class LdapSettings:
    host: str = ""
    port: int = 389
    base: str = ""
    domain: str = ""
    user: str = ""
    password: str = ""
    timeout: float = 10


@dataclass(frozen=True)
class SmtpSettings:
    host: str = ""
    port: int = 25
    user: str = ""
    password: str = ""
    sender: str = ""
    use_tls: bool = False
    timeout: float = 30


@dataclass(frozen=True)
class WardConfig:
    gitlab: GitLabSettings
    service_account: str
    awards: Dict[str, MarkerKind]  # award name -> kind
    projects: Dict[int, ProjectPolicy]
    ldap: LdapSettings = field(default_factory=LdapSettings)
    smtp: SmtpSettings = field(default_factory=SmtpSettings)

    def award_name(self, kind: MarkerKind) -> str:
        for name, k in self.awards.items():
            if k is kind:
                return name
        raise KeyError(kind)


def _find_config_path():
    """Walk up from this file to find ward_config.json."""
    d = os.path.dirname(os.path.abspath(__file__))
    for _ in range(5):
        candidate = os.path.join(d, CONFIG_FILE_NAME)
        if os.path.isfile(candidate):
            return candidate
        d = os.path.dirname(d)
    return None


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be an object")
    merged = {**_DEFAULTS.get(name, {}), **value}
    for (section, key), env_var in _SECRET_ENV_VARS.items():
        if section == name and os.environ.get(env_var):
            merged[key] = os.environ[env_var]
    return merged


def parse_awards(raw_awards) -> Dict[str, MarkerKind]:
    """Map configured award names to marker kinds, failing on anything unexpected."""
    if not isinstance(raw_awards, dict):
        raise ConfigError("'awards' must be an object")

    known = {kind.value: kind for kind in MarkerKind}
    unknown = sorted(set(raw_awards) - set(known))
    if unknown:
        raise ConfigError(f"unknown award keys: {unknown}. Must be one of {sorted(known)}")

    awards: Dict[str, MarkerKind] = {}
    for key, kind in known.items():
        name = raw_awards.get(key)
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"award name for '{key}' is required")
        name = name.strip()
        if name in awards:
            raise ConfigError(f"award name {name!r} used for both '{awards[name].value}' and '{key}'")
        awards[name] = kind
    return awards


def parse_project(key, payload) -> ProjectPolicy:
    try:
        pid = int(key)
    except (TypeError, ValueError):
        raise ConfigError(f"project id must be an integer, got: {key!r}") from None
    if not isinstance(payload, dict):
        raise ConfigError(f"project {pid}: must be an object")

    raw_teams = payload.get("teams", {})
    if not isinstance(raw_teams, dict):
        raise ConfigError(f"project {pid}: 'teams' must map team name to a list of usernames")
    teams = {}
    for team, members in raw_teams.items():
        if not isinstance(members, list) or not all(isinstance(m, str) for m in members):
            raise ConfigError(f"project {pid}: team {team!r} must be a list of usernames")
        teams[team] = frozenset(m.strip().lower() for m in members if m.strip())

    votes = payload.get("votes", 0)
    if not isinstance(votes, int) or isinstance(votes, bool) or votes < 0:
        raise ConfigError(f"project {pid}: 'votes' must be a non-negative integer")

    return ProjectPolicy(id=pid, teams=teams, votes=votes)


def parse_config(raw: dict) -> WardConfig:
    """Validate a raw JSON payload into a WardConfig."""
    if not isinstance(raw, dict):
        raise ConfigError("top-level JSON must be an object")

    gitlab = _section(raw, "gitlab")
    if not gitlab.get("url"):
        raise ConfigError("'gitlab.url' is required")

    service_account = raw.get("service_account")
    if not isinstance(service_account, str) or not service_account.strip():
        raise ConfigError("'service_account' is required")

    raw_projects = raw.get("projects")
    if not isinstance(raw_projects, dict) or not raw_projects:
        raise ConfigError("'projects' must be a non-empty object")
    projects = {}
    for key, payload in raw_projects.items():
        project = parse_project(key, payload)
        projects[project.id] = project

    try:
        return WardConfig(
            gitlab=GitLabSettings(**gitlab),
            service_account=service_account.strip().lower(),
            awards=parse_awards(raw.get("awards")),
            projects=projects,
            ldap=LdapSettings(**_section(raw, "ldap")),
            smtp=SmtpSettings(**_section(raw, "smtp")),
        )
    except TypeError as exc:
        # unexpected keys inside a section
        raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(path: Optional[str] = None) -> WardConfig:
    """Read the JSON config and validate it.

    Lookup order:
      1. explicit path
      2. $WARD_CONFIG
      3. ward_config.json found by walking up from this package
    """
    resolved = path or os.environ.get(CONFIG_ENV_VAR) or _find_config_path()
    if not resolved or not os.path.isfile(resolved):
        raise ConfigError(f"Config not found: {resolved or CONFIG_FILE_NAME}")

    try:
        with open(resolved, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid config {resolved}: {exc}") from exc

    return parse_config(raw)

