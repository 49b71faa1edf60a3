"""Normalizes raw GitHub webhook payloads into ``ParsedEvent`` instances.

Missing nested fields raise ``pydantic.ValidationError``; the caller decides
what to do with a malformed payload.
"""

from typing import Any, Callable

from notifier.models import (
    CheckPayload,
    CheckRunDetails,
    CheckSuiteDetails,
    IssueDetails,
    IssuesPayload,
    ParsedEvent,
    PullRequestDetails,
    PullRequestPayload,
    PushDetails,
    PushPayload,
    WebhookEnvelope,
    WorkflowRunDetails,
    WorkflowRunPayload,
)

ZERO_SHA = "0" * 40
MAX_PUSH_COMMITS = 5
BRANCH_REF_PREFIX = "refs/heads/"


def _push_details(payload: dict[str, Any]) -> PushDetails:
    push = PushPayload(**payload)
    commits = push.commits or []
    return PushDetails(
        branch=push.ref.removeprefix(BRANCH_REF_PREFIX),
        commit_count=len(commits),
        is_new_branch=push.before == ZERO_SHA,
        is_delete_branch=push.after == ZERO_SHA,
        commits=commits[:MAX_PUSH_COMMITS],
        head_commit=push.head_commit,
        compare_url=push.compare,
    )


def _pull_request_details(payload: dict[str, Any]) -> PullRequestDetails:
    pr = PullRequestPayload(**payload).pull_request
    return PullRequestDetails(
        number=pr.number,
        title=pr.title,
        url=pr.html_url,
        state=pr.state,
        draft=pr.draft,
        base_branch=pr.base.ref,
        head_branch=pr.head.ref,
        author=pr.user.login,
        merged=pr.merged,
        merge_commit_sha=pr.merge_commit_sha,
        additions=pr.additions,
        deletions=pr.deletions,
        changed_files=pr.changed_files,
    )


def _issue_details(payload: dict[str, Any]) -> IssueDetails:
    issue = IssuesPayload(**payload).issue
    return IssueDetails(
        number=issue.number,
        title=issue.title,
        url=issue.html_url,
        state=issue.state,
        author=issue.user.login,
        labels=[label.name for label in issue.labels],
        assignees=[assignee.login for assignee in issue.assignees],
    )


def _check_details(
    payload: dict[str, Any],
) -> CheckRunDetails | CheckSuiteDetails | None:
    check = CheckPayload(**payload)
    if check.check_run:
        run = check.check_run
        return CheckRunDetails(
            name=run.name,
            conclusion=run.conclusion,
            status=run.status,
            url=run.html_url,
            head_sha=run.head_sha,
        )
    if check.check_suite:
        suite = check.check_suite
        return CheckSuiteDetails(
            conclusion=suite.conclusion,
            status=suite.status,
            head_sha=suite.head_sha,
            pull_requests=[pr.number for pr in suite.pull_requests],
        )
    return None


def _workflow_run_details(payload: dict[str, Any]) -> WorkflowRunDetails:
    run = WorkflowRunPayload(**payload).workflow_run
    return WorkflowRunDetails(
        name=run.name,
        conclusion=run.conclusion,
        status=run.status,
        url=run.html_url,
        head_sha=run.head_sha,
        head_branch=run.head_branch,
        trigger_event=run.event,
        run_number=run.run_number,
        run_attempt=run.run_attempt,
    )


_EXTRACTORS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "push": _push_details,
    "pull_request": _pull_request_details,
    "issues": _issue_details,
    "check_run": _check_details,
    "check_suite": _check_details,
    "workflow_run": _workflow_run_details,
}

SUPPORTED_EVENT_TYPES = frozenset(_EXTRACTORS)


def parse_event(
    event_type: str, delivery_id: str, payload: dict[str, Any]
) -> ParsedEvent:
    """Build a ``ParsedEvent`` from a webhook payload.

    Unrecognized event types are passed through with ``details=None``.
    """
    envelope = WebhookEnvelope(**payload)

    extractor = _EXTRACTORS.get(event_type)
    details = extractor(payload) if extractor else None

    return ParsedEvent(
        event_type=event_type,
        event_id=delivery_id,
        repository=envelope.repository.full_name,
        repository_url=envelope.repository.html_url,
        sender=envelope.sender.login,
        sender_url=envelope.sender.html_url,
        action=envelope.action or None,
        details=details,
    )
