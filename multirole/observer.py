"""Interface for services that follow the contents of a git repository."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

PathList = list[Path]


@dataclass
class GitDiff:
    """Files removed and added by an update.

    A file that was only modified appears in both lists.
    """

    removed: PathList = field(default_factory=list)
    added: PathList = field(default_factory=list)


class GitRepoObserver(ABC):
    """Receives the file list of a repository and the diffs of its updates."""

    @abstractmethod
    def on_add(self, path, file_list) -> None:
        """Called once with every file of the repository checked out at ``path``."""

    @abstractmethod
    def on_diff(self, path, diff: GitDiff) -> None:
        """Called after the repository at ``path`` was updated."""