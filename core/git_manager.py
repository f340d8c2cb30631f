# core/git_manager.py
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import git
from git.exc import GitError
from loguru import logger

from .config import DEFAULT_STATE_FILE
from .errors import MirrorUpdateFailure
from .metrics import MIRROR_FAILURE_COUNTER
from .schemas import check_path_component

BRANCH_REFSPEC = "+refs/heads/*:refs/heads/*"
TAG_REFSPEC = "+refs/tags/*:refs/tags/*"
REMOTE_NAME = "origin"


@dataclass(frozen=True)
class MirrorState:
    """Snapshot of a mirror directory taken before it is updated."""

    path: str
    initialized: bool


class MirrorManager:
    def __init__(
        self,
        base_path: str = "/var/lib/git-notify",
        state_file: str = DEFAULT_STATE_FILE,
        git_timeout: Optional[float] = None,
    ):
        self.base_path = str(base_path).rstrip("/")
        self.state_file = state_file
        self.git_timeout = git_timeout

    def get_repository_path(self, owner: str, repo_name: str) -> str:
        """Raises ``ValueError`` for names that would leave the base path."""
        check_path_component(owner)
        check_path_component(repo_name)
        return f"{self.base_path}/{owner}/{repo_name}"

    def ensure_mirror(self, owner: str, repo_name: str) -> str:
        """Create ``<base>/<owner>/<repo>`` if missing. Existing content is left alone."""
        dest = self.get_repository_path(owner, repo_name)
        Path(dest).mkdir(parents=True, exist_ok=True)
        return dest

    def mirror_state(self, owner: str, repo_name: str) -> MirrorState:
        dest = self.get_repository_path(owner, repo_name)
        return MirrorState(
            path=dest, initialized=(Path(dest) / self.state_file).exists()
        )

    def _git_kwargs(self) -> dict:
        if self.git_timeout:
            return {"kill_after_timeout": self.git_timeout}
        return {}

    def _sync_remote(self, repo: git.Repo, remote_url: str) -> None:
        names = [r.name for r in repo.remotes]
        if REMOTE_NAME in names:
            remote = repo.remote(REMOTE_NAME)
            if remote.url != remote_url:
                remote.set_url(remote_url)
        else:
            repo.create_remote(REMOTE_NAME, remote_url)
        repo.git.remote("update", **self._git_kwargs())

    def update_mirror(self, remote_url: str, path: str) -> bool:
        """
        Bring the bare mirror at ``path`` in line with ``remote_url``.

        Branches and tags are force-fetched into local refs rather than merged, so
        the mirror reflects the remote exactly (branches deleted upstream stay until
        pruned). Every step is attempted even if an earlier fetch failed; the return
        value is True only when all of them succeeded.
        """
        try:
            repo = git.Repo.init(path, bare=True)
        except GitError as e:
            self._report(MirrorUpdateFailure("init", path, str(e)))
            return False

        kwargs = self._git_kwargs()
        steps: List[Tuple[str, Callable[[], object]]] = [
            (
                "fetch-branches",
                lambda: repo.git.fetch(remote_url, BRANCH_REFSPEC, force=True, **kwargs),
            ),
            (
                "fetch-tags",
                lambda: repo.git.fetch(remote_url, TAG_REFSPEC, force=True, **kwargs),
            ),
            ("remote-update", lambda: self._sync_remote(repo, remote_url)),
        ]

        ok = True
        for name, step in steps:
            try:
                step()
            except GitError as e:
                self._report(MirrorUpdateFailure(name, path, str(e)))
                ok = False

        if ok:
            logger.debug(f"Mirror {path} updated from {remote_url}")
        return ok

    def _report(self, failure: MirrorUpdateFailure) -> None:
        MIRROR_FAILURE_COUNTER.inc()
        logger.warning(str(failure))

    def list_mirrors(self) -> List[str]:
        """Return ``owner/repo`` for every mirror directory under the base path."""
        base = Path(self.base_path)
        if not base.exists():
            return []
        names = []
        for owner in sorted(base.iterdir()):
            if not owner.is_dir():
                continue
            for repo in sorted(owner.iterdir()):
                if repo.is_dir():
                    names.append(f"{owner.name}/{repo.name}")
        return names
