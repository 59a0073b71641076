"""GitHub data models used by the pipeline."""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FileChange:
    """One file to write in an atomic multi-file commit.

    Attributes:
        path: Repository path of the file.
        content: Raw file bytes.
    """

    path: str
    content: bytes

    @property
    def base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


@dataclass(frozen=True)
class RepositoryInfo:
    """Result of ensuring a repository exists.

    Attributes:
        clone_url: HTTPS clone URL.
        is_new: True if the repository was created by this call.
    """

    clone_url: str
    is_new: bool


class MergeStatus(str, Enum):
    """Outcome of merging one branch into another.

    Attributes:
        MERGED: Head merged (or base already contained it).
        CONFLICT: The merge needs manual conflict resolution.
        ERROR: Any other merge failure.
    """

    MERGED = "merged"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a merge request.

    Attributes:
        status: Merged, conflict or error.
        sha: Merge commit SHA when a commit was created.
        message: Error description for CONFLICT and ERROR.
    """

    status: MergeStatus
    sha: Optional[str] = None
    message: Optional[str] = None
