"""
Unit tests for core.git_manager module.
Tests mirror directory layout, first-run detection and the mirror update sequence.
"""

import shutil
from unittest.mock import Mock, patch

import git
import pytest
from git.exc import GitCommandError

from core.git_manager import BRANCH_REFSPEC, TAG_REFSPEC, MirrorManager, MirrorState


@pytest.fixture
def manager(tmp_path):
    """Fixture to create a MirrorManager rooted in a temp dir."""
    return MirrorManager(base_path=str(tmp_path), state_file="STATE")


@pytest.fixture
def mock_repo():
    """Fixture to create a mock bare repository."""
    repo = Mock(spec=git.Repo)
    repo.git = Mock()
    repo.remotes = []
    return repo


class TestLayout:
    def test_repository_path(self, manager, tmp_path):
        assert manager.get_repository_path("acme", "widgets") == f"{tmp_path}/acme/widgets"

    def test_trailing_slash_in_base_path(self):
        manager = MirrorManager(base_path="/srv/mirrors/")
        assert manager.get_repository_path("o", "r") == "/srv/mirrors/o/r"

    def test_ensure_mirror_creates_nested_directory(self, manager, tmp_path):
        path = manager.ensure_mirror("acme", "widgets")
        assert path == str(tmp_path / "acme" / "widgets")
        assert (tmp_path / "acme" / "widgets").is_dir()

    def test_ensure_mirror_is_idempotent(self, manager, tmp_path):
        path = manager.ensure_mirror("acme", "widgets")
        marker = tmp_path / "acme" / "widgets" / "STATE"
        marker.write_text("state")

        assert manager.ensure_mirror("acme", "widgets") == path
        assert marker.read_text() == "state"

    @pytest.mark.parametrize(
        "owner, repo_name", [("..", "escaped"), ("acme", ".."), ("acme", "../x"), ("", "r")]
    )
    def test_paths_outside_base_are_refused(self, tmp_path, owner, repo_name):
        base = tmp_path / "mirrors"
        manager = MirrorManager(base_path=str(base))

        with pytest.raises(ValueError):
            manager.ensure_mirror(owner, repo_name)
        with pytest.raises(ValueError):
            manager.mirror_state(owner, repo_name)
        assert not (tmp_path / "escaped").exists()
        assert not base.exists()

    def test_list_mirrors(self, manager):
        manager.ensure_mirror("acme", "widgets")
        manager.ensure_mirror("acme", "gadgets")
        manager.ensure_mirror("other", "thing")

        assert manager.list_mirrors() == ["acme/gadgets", "acme/widgets", "other/thing"]

    def test_list_mirrors_missing_base(self, tmp_path):
        manager = MirrorManager(base_path=str(tmp_path / "missing"))
        assert manager.list_mirrors() == []


class TestMirrorState:
    def test_fresh_mirror_is_not_initialized(self, manager):
        path = manager.ensure_mirror("acme", "widgets")
        assert manager.mirror_state("acme", "widgets") == MirrorState(path, False)

    def test_marker_file_marks_initialized(self, manager, tmp_path):
        path = manager.ensure_mirror("acme", "widgets")
        (tmp_path / "acme" / "widgets" / "STATE").touch()
        assert manager.mirror_state("acme", "widgets") == MirrorState(path, True)


class TestUpdateMirror:
    @patch('core.git_manager.git.Repo')
    def test_runs_steps_in_order(self, mock_repo_class, manager, mock_repo):
        mock_repo_class.init.return_value = mock_repo

        ok = manager.update_mirror("https://github.com/acme/widgets.git", "/m")

        assert ok is True
        mock_repo_class.init.assert_called_once_with("/m", bare=True)
        fetches = mock_repo.git.fetch.call_args_list
        assert fetches[0].args == ("https://github.com/acme/widgets.git", BRANCH_REFSPEC)
        assert fetches[1].args == ("https://github.com/acme/widgets.git", TAG_REFSPEC)
        assert fetches[0].kwargs["force"] is True
        mock_repo.create_remote.assert_called_once_with(
            "origin", "https://github.com/acme/widgets.git"
        )
        mock_repo.git.remote.assert_called_once_with("update")

    @patch('core.git_manager.git.Repo')
    def test_existing_remote_url_is_updated(self, mock_repo_class, manager, mock_repo):
        origin = Mock()
        origin.name = "origin"
        origin.url = "git://github.com/acme/widgets.git"
        mock_repo.remotes = [origin]
        mock_repo.remote.return_value = origin
        mock_repo_class.init.return_value = mock_repo

        manager.update_mirror("https://github.com/acme/widgets.git", "/m")

        origin.set_url.assert_called_once_with("https://github.com/acme/widgets.git")
        mock_repo.create_remote.assert_not_called()

    @patch('core.git_manager.git.Repo')
    def test_unchanged_remote_is_left_alone(self, mock_repo_class, manager, mock_repo):
        origin = Mock()
        origin.name = "origin"
        origin.url = "https://github.com/acme/widgets.git"
        mock_repo.remotes = [origin]
        mock_repo.remote.return_value = origin
        mock_repo_class.init.return_value = mock_repo

        manager.update_mirror("https://github.com/acme/widgets.git", "/m")

        origin.set_url.assert_not_called()

    @patch('core.git_manager.git.Repo')
    def test_fetch_failure_continues_and_reports(
        self, mock_repo_class, manager, mock_repo, log_records
    ):
        mock_repo.git.fetch.side_effect = [GitCommandError("fetch", 128), None]
        mock_repo_class.init.return_value = mock_repo

        ok = manager.update_mirror("git://github.com/acme/widgets.git", "/m")

        assert ok is False
        assert mock_repo.git.fetch.call_count == 2
        mock_repo.git.remote.assert_called_once()
        warnings = log_records.messages("WARNING")
        assert any("fetch-branches" in m and "/m" in m for m in warnings)

    @patch('core.git_manager.git.Repo')
    def test_init_failure_stops(self, mock_repo_class, manager):
        mock_repo_class.init.side_effect = GitCommandError("init", 1)

        assert manager.update_mirror("git://github.com/a/b.git", "/m") is False

    @patch('core.git_manager.git.Repo')
    def test_timeout_is_passed_to_git(self, mock_repo_class, mock_repo, tmp_path):
        manager = MirrorManager(base_path=str(tmp_path), git_timeout=30)
        mock_repo_class.init.return_value = mock_repo

        manager.update_mirror("git://github.com/a/b.git", "/m")

        for call in mock_repo.git.fetch.call_args_list:
            assert call.kwargs["kill_after_timeout"] == 30
        mock_repo.git.remote.assert_called_once_with("update", kill_after_timeout=30)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestUpdateMirrorWithGit:
    """Runs against a real upstream repository on disk."""

    @pytest.fixture
    def upstream(self, tmp_path):
        repo = git.Repo.init(tmp_path / "upstream")
        (tmp_path / "upstream" / "README").write_text("hello\n")
        repo.index.add(["README"])
        actor = git.Actor("Test", "test@example.test")
        repo.index.commit("initial", author=actor, committer=actor)
        repo.create_tag("v1.0")
        return repo

    def _refs(self, path):
        return {ref.path: ref.commit.hexsha for ref in git.Repo(path).refs}

    def test_mirror_update_is_idempotent(self, manager, upstream):
        path = manager.ensure_mirror("acme", "widgets")
        remote = upstream.working_tree_dir

        assert manager.update_mirror(remote, path) is True
        first = self._refs(path)
        assert manager.update_mirror(remote, path) is True

        assert self._refs(path) == first
        head = upstream.head.commit.hexsha
        assert f"refs/heads/{upstream.active_branch.name}" in first
        assert first["refs/tags/v1.0"] == head

    def test_unreachable_remote_keeps_existing_refs(self, manager, upstream, tmp_path):
        path = manager.ensure_mirror("acme", "widgets")
        manager.update_mirror(upstream.working_tree_dir, path)
        before = self._refs(path)

        assert manager.update_mirror(str(tmp_path / "gone"), path) is False
        assert self._refs(path) == before
