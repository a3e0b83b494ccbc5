"""Tests for dead branch detection."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from directory.identity import UNIDENTIFIED_EMAIL, IdentityResolver, Stage
from directory.ldap_client import DirectoryError, LdapDirectory
from gitlab_sync.client import Branch, ForgeConnectionError, ProjectInfo
from gitlab_sync.workflow_config import ProjectPolicy
from workflow.caches import IdentityCache, ProjectInfoCache
from workflow.dead_branches import branch_age, detect_dead_branches

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)
PROJECTS = {
    42: ProjectPolicy(id=42, teams={"A": frozenset({"bob", "alice"}), "B": frozenset({"alice", "carol"})}),
}


def _make_branch(name, days=10, hours=0, email="alice@example.com", author="Alice", protected=False):
    return Branch(name=name, protected=protected, author_name=author, author_email=email,
                  authored_date=NOW - timedelta(days=days, hours=hours))


def _make_client(branches, base_url="https://gitlab.example.com"):
    """branches: {project_id: [branches in server order]}"""
    client = Mock()
    client.base_url = base_url
    client.get_project.side_effect = lambda pid: ProjectInfo(name=f"group/p{pid}", url=f"{base_url}/group/p{pid}")
    client.iter_branches.side_effect = lambda pid: iter(branches.get(pid, []))
    return client


def _make_directory(by_mail=("alice@example.com",), by_username=None):
    by_username = by_username or {}
    directory = Mock()
    directory.lookup_by_mail.side_effect = lambda email: [email] if email in by_mail else []
    directory.lookup_by_usernames.side_effect = lambda names: [by_username[n] for n in names if n in by_username]
    return directory


def _detect(client, directory=None, projects=PROJECTS):
    resolver = IdentityResolver(directory or _make_directory())
    return detect_dead_branches(client, projects, IdentityCache(resolver), ProjectInfoCache(client), now=NOW)


class TestBranchAge:
    def test_ten_days(self):
        assert branch_age(_make_branch("b", days=10), NOW) == 10

    def test_three_days_alive(self):
        assert branch_age(_make_branch("b", days=3), NOW) is None

    def test_exactly_seven_days_is_dead(self):
        assert branch_age(_make_branch("b", days=7), NOW) == 7

    def test_just_under_seven_days_alive(self):
        assert branch_age(_make_branch("b", days=6, hours=23), NOW) is None

    def test_age_floors_partial_days(self):
        assert branch_age(_make_branch("b", days=8, hours=23), NOW) == 8


class TestDetect:
    def test_stale_branch_included_fresh_excluded(self):
        client = _make_client({42: [_make_branch("old", days=10), _make_branch("new", days=3)]})
        report = _detect(client)

        project = report.projects[42]
        assert list(project.branches) == ["old"]
        assert project.branches["old"].age == 10
        assert project.branches["old"].author == "Alice"
        assert project.name == "group/p42"
        assert project.owners == ["alice", "bob", "carol"]
        assert report.authors["alice@example.com"].branches == {42: ["old"]}

    def test_protected_branch_skipped(self):
        client = _make_client({42: [_make_branch("main", days=100, protected=True)]})
        report = _detect(client)
        assert report.projects == {}
        assert report.authors == {}

    def test_branches_kept_in_server_order(self):
        client = _make_client({42: [_make_branch("c"), _make_branch("a"), _make_branch("b")]})
        report = _detect(client)
        assert list(report.projects[42].branches) == ["c", "a", "b"]
        assert report.authors["alice@example.com"].branches == {42: ["c", "a", "b"]}
        client.iter_branches.assert_called_once_with(42)

    def test_identity_resolved_once_per_email(self):
        directory = _make_directory()
        client = _make_client({42: [_make_branch("a"), _make_branch("b"), _make_branch("c")]})
        report = _detect(client, directory)
        directory.lookup_by_mail.assert_called_once_with("alice@example.com")
        assert report.authors["alice@example.com"].branches == {42: ["a", "b", "c"]}

    def test_project_info_fetched_once(self):
        client = _make_client({42: [_make_branch("a"), _make_branch("b")]})
        _detect(client)
        client.get_project.assert_called_once_with(42)

    def test_project_without_dead_branches_has_no_entry(self):
        client = _make_client({42: [_make_branch("fresh", days=1)]})
        report = _detect(client)
        assert report.projects == {}
        client.get_project.assert_not_called()

    def test_unidentified_author_grouped_under_sentinel(self):
        client = _make_client({42: [
            _make_branch("x", email="ghost@laptop", author="Ghost"),
            _make_branch("y", email="phantom@laptop", author="Phantom"),
        ]})
        report = _detect(client, _make_directory(by_mail=()))
        sentinel = report.authors[UNIDENTIFIED_EMAIL]
        assert sentinel.name == "Unidentified"
        assert sentinel.branches == {42: ["x", "y"]}
        assert report.projects[42].branches["x"].author == "Unidentified"

    def test_author_across_projects(self):
        projects = {**PROJECTS, 7: ProjectPolicy(id=7, teams={"C": frozenset({"dave"})})}
        client = _make_client({42: [_make_branch("a")], 7: [_make_branch("b")]})
        report = _detect(client, projects=projects)
        author = report.authors["alice@example.com"]
        assert author.sorted_branches() == [(7, ["b"]), (42, ["a"])]
        assert [pid for pid, _ in report.sorted_projects()] == [7, 42]

    def test_list_failure_keeps_collected_branches(self):
        def flaky(pid):
            yield _make_branch("a")
            raise ForgeConnectionError("down")
        client = _make_client({})
        client.iter_branches.side_effect = flaky

        report = _detect(client)
        assert list(report.projects[42].branches) == ["a"]

    def test_directory_failure_skips_branch(self):
        directory = Mock()
        directory.lookup_by_mail.side_effect = [DirectoryError("down"), ["alice@example.com"]]
        client = _make_client({42: [_make_branch("a"), _make_branch("b")]})
        report = _detect(client, directory)
        assert list(report.projects[42].branches) == ["b"]

    def test_unreachable_directory_host_skips_branches(self):
        directory = LdapDirectory("ldap://dc.example.com:abc", "dc=example,dc=com", "svc", "pw")
        client = _make_client({42: [_make_branch("a", days=10)]})
        report = _detect(client, directory)
        assert report.projects == {}
        assert report.authors == {}

    def test_project_info_fallback(self):
        client = _make_client({42: [_make_branch("a")]})
        client.get_project.side_effect = ForgeConnectionError("down")
        report = _detect(client)
        assert report.projects[42].name == "42"
        assert report.projects[42].url == "https://gitlab.example.com"


class TestStageOneScenario:
    def test_exact_mail_match(self):
        directory = _make_directory()
        resolver = IdentityResolver(directory)
        cache = IdentityCache(resolver)
        client = _make_client({42: [_make_branch("feature", days=10)]})
        report = detect_dead_branches(client, PROJECTS, cache, ProjectInfoCache(client), now=NOW)
        assert report.projects[42].branches["feature"].age == 10
        assert cache.resolve("Alice", "alice@example.com").stage is Stage.EXACT_MAIL
