"""Exception hierarchy for the dispatch core.

Only ConfigurationError is allowed to escape to the caller (at startup). Everything
else is raised inside a dispatch and converted into a logged DispatchResult.
"""
from __future__ import annotations

from typing import Optional, Sequence


class DispatchError(Exception):
    """Base class for dispatcher errors."""


class NoMatchingRule(DispatchError):
    def __init__(self, repository: str):
        self.repository = repository
        super().__init__(f"No repository rule matches {repository}")


class UnsupportedProtocol(DispatchError):
    def __init__(self, protocol: str):
        self.protocol = protocol
        super().__init__(f"Unsupported protocol: {protocol!r}")


class MirrorUpdateFailure(DispatchError):
    def __init__(self, step: str, directory: str, detail: str = ""):
        self.step = step
        self.directory = directory
        self.detail = detail
        super().__init__(f"Mirror step '{step}' failed in {directory}: {detail}")


class NotifierInvocationFailure(DispatchError):
    def __init__(
        self, directory: str, argv: Sequence[str], detail: Optional[str] = None
    ):
        self.directory = directory
        self.argv = list(argv)
        self.detail = detail
        super().__init__(
            f"Notifier failed in {directory} with {' '.join(self.argv)}: {detail}"
        )


class ConfigurationError(DispatchError):
    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"Invalid configuration in {source}: {detail}")
