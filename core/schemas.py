from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ZERO_SHA = "0" * 40


def check_path_component(value: str) -> str:
    """Owner and repository names become directories under the mirror workdir."""
    if value in ("", ".", "..") or "/" in value or "\\" in value:
        raise ValueError(f"{value!r} is not a usable owner or repository name")
    return value


class DispatchStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"
    NO_MATCH = "no_match"
    IGNORED = "ignored"


class DispatchState(str, Enum):
    """Orchestrator states, logged on each transition."""

    RECEIVED = "received"
    MATCHED = "matched"
    MIRRORED = "mirrored"
    ARGS_BUILT = "args_built"
    NOTIFIED = "notified"
    DONE = "done"
    NO_MATCH = "no_match"
    FAILED = "failed"


class PushEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    repo_name: str
    before: str
    after: str
    repository_url: str
    compare_url: str = ""
    committer_email: Optional[str] = None
    pusher_email: Optional[str] = None

    @field_validator("owner", "repo_name")
    @classmethod
    def _safe_names(cls, value: str) -> str:
        return check_path_component(value)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"

    @property
    def created(self) -> bool:
        return self.before == ZERO_SHA

    @property
    def deleted(self) -> bool:
        return self.after == ZERO_SHA

    @property
    def sha_range(self) -> str:
        return f"{self.before[:12]}..{self.after[:12]}"


class DispatchResult(BaseModel):
    status: DispatchStatus
    repository: Optional[str] = None
    before: Optional[str] = None
    after: Optional[str] = None
    directory: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DispatchStatus.FAILED


class Owner(BaseModel):
    name: Optional[str] = None
    login: Optional[str] = None

    @model_validator(mode="after")
    def _require_identity(self) -> "Owner":
        if not (self.name or self.login):
            raise ValueError("repository owner needs a name or login")
        return self

    @property
    def identity(self) -> str:
        return self.name or self.login or ""


class Repository(BaseModel):
    url: str
    name: str
    owner: Owner


class Person(BaseModel):
    email: Optional[str] = None


class HeadCommit(BaseModel):
    committer: Optional[Person] = None


class PushPayload(BaseModel):
    """The parts of a GitHub push webhook the dispatcher reads."""

    model_config = ConfigDict(extra="ignore")

    repository: Repository
    before: str = Field(..., description="SHA the ref pointed to before the push")
    after: str = Field(..., description="SHA the ref points to after the push")
    compare: str = ""
    head_commit: Optional[HeadCommit] = None
    pusher: Optional[Person] = None

    def to_event(self) -> PushEvent:
        pusher_email = self.pusher.email if self.pusher else None
        committer_email = None
        if self.head_commit and self.head_commit.committer:
            committer_email = self.head_commit.committer.email
        return PushEvent(
            owner=self.repository.owner.identity,
            repo_name=self.repository.name,
            before=self.before,
            after=self.after,
            repository_url=self.repository.url,
            compare_url=self.compare,
            committer_email=committer_email or pusher_email,
            pusher_email=pusher_email,
        )


def is_ping(payload: Any) -> bool:
    """GitHub sends a ``zen`` field on the ping that follows hook creation."""
    return isinstance(payload, dict) and "zen" in payload
