from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Inbound GitHub webhook payloads
# ---------------------------------------------------------------------------


class Repository(BaseModel):
    full_name: str
    html_url: str


class Sender(BaseModel):
    login: str
    html_url: str


class WebhookEnvelope(BaseModel):
    """Fields shared by every repository-scoped GitHub webhook."""

    action: str | None = None
    repository: Repository
    sender: Sender


class CommitAuthor(BaseModel):
    name: str = ""
    email: str | None = None


class Commit(BaseModel):
    id: str
    message: str = ""
    author: CommitAuthor | None = None
    url: str = ""
    added: list[str] = []
    removed: list[str] = []
    modified: list[str] = []


class PushPayload(BaseModel):
    ref: str
    before: str = ""
    after: str = ""
    commits: list[Commit] | None = None
    head_commit: Commit | None = None
    compare: str | None = None


class BranchRef(BaseModel):
    ref: str


class User(BaseModel):
    login: str


class PullRequest(BaseModel):
    number: int
    title: str
    html_url: str
    state: str
    draft: bool = False
    base: BranchRef
    head: BranchRef
    user: User
    merged: bool = False
    merge_commit_sha: str | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0


class PullRequestPayload(BaseModel):
    pull_request: PullRequest


class Label(BaseModel):
    name: str


class Issue(BaseModel):
    number: int
    title: str
    html_url: str
    state: str
    user: User
    labels: list[Label] = []
    assignees: list[User] = []


class IssuesPayload(BaseModel):
    issue: Issue


class CheckRun(BaseModel):
    name: str
    conclusion: str | None = None
    status: str
    html_url: str
    head_sha: str


class PullRequestNumber(BaseModel):
    number: int


class CheckSuite(BaseModel):
    conclusion: str | None = None
    status: str
    head_sha: str
    pull_requests: list[PullRequestNumber] = []


class CheckPayload(BaseModel):
    check_run: CheckRun | None = None
    check_suite: CheckSuite | None = None


class WorkflowRun(BaseModel):
    name: str
    conclusion: str | None = None
    status: str
    html_url: str
    head_sha: str
    head_branch: str | None = None
    event: str
    run_number: int = 0
    run_attempt: int = 0


class WorkflowRunPayload(BaseModel):
    workflow_run: WorkflowRun


# ---------------------------------------------------------------------------
# Normalized event shape
# ---------------------------------------------------------------------------


class PushDetails(BaseModel):
    kind: Literal["push"] = "push"
    branch: str
    commit_count: int
    is_new_branch: bool
    is_delete_branch: bool
    commits: list[Commit] = []  # first MAX_PUSH_COMMITS only
    head_commit: Commit | None = None
    compare_url: str | None = None


class PullRequestDetails(BaseModel):
    kind: Literal["pull_request"] = "pull_request"
    number: int
    title: str
    url: str
    state: str
    draft: bool
    base_branch: str
    head_branch: str
    author: str
    merged: bool
    merge_commit_sha: str | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0


class IssueDetails(BaseModel):
    kind: Literal["issues"] = "issues"
    number: int
    title: str
    url: str
    state: str
    author: str
    labels: list[str] = []
    assignees: list[str] = []


class CheckRunDetails(BaseModel):
    kind: Literal["check_run"] = "check_run"
    name: str
    conclusion: str | None = None
    status: str
    url: str
    head_sha: str


class CheckSuiteDetails(BaseModel):
    kind: Literal["check_suite"] = "check_suite"
    conclusion: str | None = None
    status: str
    head_sha: str
    pull_requests: list[int] = []


class WorkflowRunDetails(BaseModel):
    kind: Literal["workflow_run"] = "workflow_run"
    name: str
    conclusion: str | None = None
    status: str
    url: str
    head_sha: str
    head_branch: str | None = None
    trigger_event: str
    run_number: int = 0
    run_attempt: int = 0


EventDetails = Annotated[
    Union[
        PushDetails,
        PullRequestDetails,
        IssueDetails,
        CheckRunDetails,
        CheckSuiteDetails,
        WorkflowRunDetails,
    ],
    Field(discriminator="kind"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParsedEvent(BaseModel):
    event_type: str
    event_id: str
    repository: str
    repository_url: str
    sender: str
    sender_url: str
    action: str | None = None
    # None for event types without a dedicated extractor.
    details: EventDetails | None = None
    # Time of parsing, not of the GitHub action.
    timestamp: datetime = Field(default_factory=_utcnow)
