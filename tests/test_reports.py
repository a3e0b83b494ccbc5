"""Tests for dead branch report rendering and mailing."""

from unittest.mock import Mock

from directory.identity import UNIDENTIFIED_EMAIL
from directory.ldap_client import DirectoryError
from notify.reports import render_author_report, render_project_report, send_dead_branch_reports
from workflow.dead_branches import AuthorReport, DeadBranch, DeadBranchReport, ProjectReport


def _make_report():
    project = ProjectReport(
        name="Group / <Project>",
        url="https://gitlab.example.com/g/p",
        owners=["alice", "bob"],
        branches={
            "zeta": DeadBranch(author="Alice", age=12),
            "alpha": DeadBranch(author="Unidentified", age=30),
        },
    )
    return DeadBranchReport(
        projects={42: project},
        authors={
            "alice@example.com": AuthorReport(name="Alice", branches={42: ["zeta"]}),
            UNIDENTIFIED_EMAIL: AuthorReport(name="Unidentified", branches={42: ["alpha"]}),
        },
    )


def _make_mailer(success=True):
    mailer = Mock()
    mailer.send.side_effect = lambda recipients, subject, body: (
        {"success": True, "recipients": recipients} if success
        else {"success": False, "recipients": recipients, "error": "refused"}
    )
    return mailer


class TestRender:
    def test_project_report_lists_branches_in_order(self):
        html = render_project_report(_make_report().projects[42])
        assert html.index("alpha") < html.index("zeta")
        assert "<td>12</td>" in html
        assert 'href="https://gitlab.example.com/g/p"' in html

    def test_project_name_is_escaped(self):
        html = render_project_report(_make_report().projects[42])
        assert "Group / &lt;Project&gt;" in html

    def test_author_report(self):
        report = _make_report()
        html = render_author_report(report.authors["alice@example.com"], report.projects)
        assert "Hello Alice" in html
        assert "zeta" in html and "(12 days)" in html
        assert "alpha" not in html

    def test_author_report_unknown_project(self):
        html = render_author_report(AuthorReport(name="Bob", branches={99: ["x"]}), {})
        assert "99" in html and "x" in html


class TestSend:
    def test_sentinel_author_not_mailed(self):
        mailer = _make_mailer()
        directory = Mock()
        directory.lookup_by_usernames.return_value = ["alice@example.com", "bob@example.com"]

        sent = send_dead_branch_reports(_make_report(), mailer, directory)

        assert sent == {"authors": 1, "projects": 1, "failed": 0}
        recipients = [c[0][0] for c in mailer.send.call_args_list]
        assert [UNIDENTIFIED_EMAIL] not in recipients
        assert recipients == [["alice@example.com"], ["alice@example.com", "bob@example.com"]]
        directory.lookup_by_usernames.assert_called_once_with(["alice", "bob"])

    def test_project_subject(self):
        mailer = _make_mailer()
        directory = Mock()
        directory.lookup_by_usernames.return_value = ["alice@example.com"]
        send_dead_branch_reports(_make_report(), mailer, directory)
        assert mailer.send.call_args_list[-1][0][1] == "Dead branches in Group / <Project>"

    def test_directory_failure_counted(self):
        directory = Mock()
        directory.lookup_by_usernames.side_effect = DirectoryError("down")
        sent = send_dead_branch_reports(_make_report(), _make_mailer(), directory)
        assert sent == {"authors": 1, "projects": 0, "failed": 1}

    def test_mail_failure_counted(self):
        directory = Mock()
        directory.lookup_by_usernames.return_value = ["alice@example.com"]
        sent = send_dead_branch_reports(_make_report(), _make_mailer(success=False), directory)
        assert sent == {"authors": 0, "projects": 0, "failed": 2}
