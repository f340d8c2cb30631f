# tests/conftest.py
import sys
from pathlib import Path

import pytest
from loguru import logger

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config import ConfigStore, parse_config  # noqa: E402
from core.schemas import PushEvent  # noqa: E402

SHA_A = "a" * 40
SHA_B = "b" * 40


# ---------------------------------------------------------------------------
# loguru capture
# ---------------------------------------------------------------------------
class LogCapture(list):
    def messages(self, level=None):
        return [
            r["message"] for r in self if level is None or r["level"].name == level
        ]


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records = LogCapture()
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


# ---------------------------------------------------------------------------
# Config / event factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        data = {
            "notifier": "/usr/bin/git-notifier",
            "workdir": str(tmp_path / "mirrors"),
            "monitor_interval": 0,
            "repositories": [{"id": "^acme/", "protocol": "https"}],
        }
        data.update(overrides)
        return parse_config(data)

    return _make


@pytest.fixture
def make_store(make_config, tmp_path):
    def _make(**overrides):
        return ConfigStore(tmp_path / "config.yaml", config=make_config(**overrides))

    return _make


@pytest.fixture
def make_event():
    def _make(**overrides):
        data = {
            "owner": "acme",
            "repo_name": "widgets",
            "before": SHA_A,
            "after": SHA_B,
            "repository_url": "https://example.test/acme/widgets",
            "compare_url": "https://example.test/acme/widgets/compare/aaa...bbb",
            "committer_email": "dev@acme.test",
            "pusher_email": "pusher@acme.test",
        }
        data.update(overrides)
        return PushEvent(**data)

    return _make


@pytest.fixture
def push_payload():
    return {
        "ref": "refs/heads/main",
        "before": SHA_A,
        "after": SHA_B,
        "compare": "https://example.test/acme/widgets/compare/aaa...bbb",
        "repository": {
            "url": "https://example.test/acme/widgets",
            "name": "widgets",
            "owner": {"name": "acme"},
        },
        "head_commit": {"committer": {"email": "dev@acme.test"}},
        "pusher": {"email": "pusher@acme.test"},
    }
