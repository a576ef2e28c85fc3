"""Root-post stripping shared by every provider."""

from typing import List, Set

from ..ingestion.interfaces import Comment, CommentThread, Entry

POST_PREFIX = "t3_"


def root_ids(entry_id: str) -> Set[str]:
    """Identifiers the root post may appear under (bare and fullname forms)."""
    bare = entry_id[len(POST_PREFIX):] if entry_id.startswith(POST_PREFIX) else entry_id
    return {bare, POST_PREFIX + bare}


def strip_root_post(entry: Entry, thread: CommentThread) -> CommentThread:
    """Return the first-level replies to `entry` with the root post removed.

    Parentage wins where the source exposes it: only replies whose parent is the
    entry are kept. Otherwise, for threads that start with the root post, replies
    carrying the entry's id are dropped, falling back to dropping the first reply
    when no id matches. Empty replies are always dropped. The result is flagged
    as root-free, so stripping twice is a no-op.
    """
    ids = root_ids(entry.id)
    comments: List[Comment] = [c for c in thread.comments if c.body and c.body.strip()]

    if any(c.parent_id for c in comments):
        kept = [c for c in comments if c.parent_id in ids and c.id not in ids]
    elif thread.root_included:
        kept = [c for c in comments if c.id not in ids]
        if len(kept) == len(comments):
            kept = comments[1:]
    else:
        kept = [c for c in comments if c.id not in ids]

    return CommentThread(comments=kept, root_included=False, raw_payload=thread.raw_payload)
