"""Renders parsed push events into Telegram HTML notifications.

Only push events produce a message. Commit messages are not HTML-escaped.
"""

from urllib.parse import unquote_plus

from notifier.models import ParsedEvent, PushDetails

MAX_LISTED_COMMITS = 3
MAX_SUMMARY_LENGTH = 60
ELLIPSIS = "..."


def _summarize_commit(message: str) -> str:
    decoded = unquote_plus(message)
    first_line = decoded.split("\n")[0] or decoded
    if len(first_line) > MAX_SUMMARY_LENGTH:
        first_line = first_line[:MAX_SUMMARY_LENGTH] + ELLIPSIS
    return first_line.lower()


def format_push_message(event: ParsedEvent, details: PushDetails) -> str:
    # Branch creation and deletion carry no diff worth summarizing.
    if details.is_new_branch or details.is_delete_branch:
        return ""

    added: set[str] = set()
    removed: set[str] = set()
    modified: set[str] = set()
    for commit in details.commits:
        added.update(commit.added)
        removed.update(commit.removed)
        modified.update(commit.modified)
    total_files = len(added) + len(removed) + len(modified)

    commit_count = details.commit_count
    header = (
        f"{event.repository.lower()}@{details.branch.lower()} "
        f"pushed by {event.sender.lower()}"
    )
    if commit_count > 1:
        header += f" ({commit_count} commits)"

    lines = [header, ""]
    for commit in details.commits[:MAX_LISTED_COMMITS]:
        if commit.message:
            lines.append(f"• {_summarize_commit(commit.message)}")
    if commit_count > MAX_LISTED_COMMITS:
        lines.append(f"• ... and {commit_count - MAX_LISTED_COMMITS} more commits")

    link = f'<a href="{details.compare_url or event.repository_url}">view changes</a>'
    if total_files > 0:
        noun = "file" if total_files == 1 else "files"
        footer = f"{total_files} {noun} changed • {link}"
    else:
        footer = link

    return "\n".join(lines) + "\n\n" + footer


def format_message(event: ParsedEvent) -> str:
    """Return the chat notification for ``event``, or "" when there is none."""
    if not isinstance(event.details, PushDetails):
        return ""
    return format_push_message(event, event.details)
