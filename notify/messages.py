from typing import Iterable, Mapping, Tuple


def get_reviewers_note(teams: Mapping[str, Iterable[str]]) -> str:
    mentioned = []
    for team in sorted(teams):
        for user in sorted(teams[team]):
            if user not in mentioned:
                mentioned.append(user)
    return " ".join(["Notifying reviewers:"] + [f"@{u}" for u in mentioned])


def get_violation_notice(mr_path: str, mr_iid: int, project_url: str, project_name: str) -> Tuple[str, str]:
    """Subject and body sent to whoever merged a non-compliant MR."""
    return (
        "Code of Conduct failure incident",
f"""Hello,
<p>By merging <a href='{mr_path}'>Merge Request #{mr_iid}</a> in project <a href='{project_url}'>{project_name}</a> without the required team approvals or despite a negative review you've failed repository's Code of Conduct.</p>
<p>This incident will be reported.</p>
"""
    )


def get_owners_notice(mr_path: str, mr_iid: int, project_url: str, project_name: str) -> Tuple[str, str]:
    """Subject and body sent to the project's team members."""
    return (
        f"MR {mr_iid} has failed requirements!",
f"""<p><a href='{mr_path}'>Merge Request #{mr_iid}</a> in project <a href='{project_url}'>{project_name}</a> does not meet requirements but it was merged!</p>
"""
    )
