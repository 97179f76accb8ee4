# branchplayer/state/doc_paths.py

"""
Single contract for remote document paths and their Redis keys.

Never build document paths as literal strings outside this module.
"""

from __future__ import annotations

# =========================
# LIBRARY
# =========================

# Per-branch song collection
# libraries/{branchId}/songs/{songId}
def songs_collection(branch_id: str) -> str:
    return f"libraries/{branch_id}/songs"


# Legacy top-level collection, read as isOld=true
# songs/{songId}
LEGACY_SONGS_COLLECTION = "songs"


def song_doc(branch_id: str, song_id: str, *, is_old: bool = False) -> str:
    if is_old:
        return f"{LEGACY_SONGS_COLLECTION}/{song_id}"
    return f"{songs_collection(branch_id)}/{song_id}"


# =========================
# STATUS / COMMANDS
# =========================

# StatusSnapshot, overwritten by the owning branch device
def status_doc(branch_id: str) -> str:
    return f"libraries/{branch_id}/status/nowPlaying"


# Single latest Command, overwritten by the admin
def command_doc(branch_id: str) -> str:
    return f"libraries/{branch_id}/status/commands"


# =========================
# REDIS LAYOUT
# =========================

def doc_key(path: str) -> str:
    return f"doc:{path}"


def collection_key(collection: str) -> str:
    return f"col:{collection}"


def changes_channel(path: str) -> str:
    return f"changes:{path}"


def split_doc_path(path: str) -> tuple[str, str]:
    """`a/b/c/id` -> (`a/b/c`, `id`)"""
    collection, _, doc_id = path.rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"not a document path: {path!r}")
    return collection, doc_id
