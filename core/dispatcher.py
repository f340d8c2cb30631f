"""Per-event dispatch: match a rule, refresh the mirror, run the notifier.

A dispatch never raises. Every outcome, including unexpected faults, is returned
as a DispatchResult and logged with the repository and SHA range so it can be
reproduced by hand.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from .arguments import build_notifier_args
from .config import Config, ConfigStore, RepositoryRule
from .errors import NoMatchingRule, UnsupportedProtocol
from .git_manager import MirrorManager
from .locks import RepositoryLocks
from .matcher import iter_matches
from .metrics import DISPATCH_COUNTER
from .notifier import NotifierInvoker
from .schemas import (
    DispatchResult,
    DispatchState,
    DispatchStatus,
    PushEvent,
    PushPayload,
    is_ping,
)

REMOTE_URL_TEMPLATES: Dict[str, str] = {
    "git": "git://{host}/{owner}/{repo}.git",
    "ssh": "ssh://git@{host}/{owner}/{repo}.git",
    "https": "https://{host}/{owner}/{repo}.git",
}


def build_remote_url(
    protocol: str, owner: str, repo_name: str, host: str = "github.com"
) -> str:
    template = REMOTE_URL_TEMPLATES.get(protocol)
    if template is None:
        raise UnsupportedProtocol(protocol)
    return template.format(host=host, owner=owner, repo=repo_name)


class Dispatcher:
    def __init__(self, store: ConfigStore, locks: Optional[RepositoryLocks] = None):
        self.store = store
        self.locks = locks or RepositoryLocks()

    def _transition(self, event: PushEvent, state: DispatchState) -> None:
        logger.debug(f"[{event.full_name} {event.sha_range}] -> {state.value}")

    def _finish(self, result: DispatchResult) -> DispatchResult:
        DISPATCH_COUNTER.labels(outcome=result.status.value).inc()
        return result

    def select_rule(
        self, event: PushEvent, config: Config
    ) -> Optional[Tuple[RepositoryRule, str]]:
        """Return the first matching rule with a usable protocol and its remote URL.

        A matching rule whose protocol is unsupported is logged and skipped, and
        the next matching rule is tried.
        """
        for rule in iter_matches(event.owner, event.repo_name, config.repositories):
            try:
                url = build_remote_url(
                    rule.protocol, event.owner, event.repo_name, config.git_host
                )
            except UnsupportedProtocol as e:
                logger.error(
                    f"Skipping rule {rule.pattern!r} for {event.full_name}: {e}"
                )
                continue
            return rule, url
        return None

    def dispatch(self, event: PushEvent) -> DispatchResult:
        base = {
            "repository": event.full_name,
            "before": event.before,
            "after": event.after,
        }
        try:
            return self._finish(self._dispatch(event, base))
        except Exception as e:
            logger.exception(
                f"Dispatch for {event.full_name} {event.sha_range} crashed: {e}"
            )
            return self._finish(
                DispatchResult(status=DispatchStatus.FAILED, error=str(e), **base)
            )

    def _dispatch(self, event: PushEvent, base: Dict[str, Any]) -> DispatchResult:
        config = self.store.current
        self._transition(event, DispatchState.RECEIVED)

        selected = self.select_rule(event, config)
        if selected is None:
            self._transition(event, DispatchState.NO_MATCH)
            logger.warning(str(NoMatchingRule(event.full_name)))
            return DispatchResult(status=DispatchStatus.NO_MATCH, **base)
        rule, remote_url = selected
        self._transition(event, DispatchState.MATCHED)

        mirrors = MirrorManager(
            config.workdir, state_file=config.state_file, git_timeout=config.git_timeout
        )
        notifier = NotifierInvoker(config.notifier, timeout=config.notifier_timeout)

        with self.locks.hold(event.full_name):
            directory = mirrors.ensure_mirror(event.owner, event.repo_name)
            mirror_state = mirrors.mirror_state(event.owner, event.repo_name)
            if not mirrors.update_mirror(remote_url, directory):
                logger.warning(
                    f"Mirror update for {event.full_name} was incomplete; "
                    "running notifier on existing state"
                )
            self._transition(event, DispatchState.MIRRORED)

            args = build_notifier_args(
                config.options,
                rule.options,
                event,
                mirror_state,
                silent_init=config.silent_init,
            )
            self._transition(event, DispatchState.ARGS_BUILT)

            ok = notifier.invoke(directory, args)
            self._transition(event, DispatchState.NOTIFIED)

        if not ok:
            self._transition(event, DispatchState.FAILED)
            logger.error(
                f"Notification for {event.full_name} {event.sha_range} failed "
                f"(directory {directory})"
            )
            return DispatchResult(
                status=DispatchStatus.FAILED,
                directory=directory,
                error="notifier invocation failed",
                **base,
            )

        self._transition(event, DispatchState.DONE)
        mode = " (silent init)" if args.get("updateonly") is True else ""
        logger.success(f"Notified {event.full_name} {event.sha_range}{mode}")
        return DispatchResult(status=DispatchStatus.DONE, directory=directory, **base)

    def dispatch_payload(self, payload: Any) -> DispatchResult:
        """Dispatch a raw webhook payload, ignoring pings and unparseable bodies."""
        if is_ping(payload):
            logger.info("Ignoring webhook ping")
            return DispatchResult(status=DispatchStatus.IGNORED)
        try:
            event = PushPayload.model_validate(payload).to_event()
        except ValidationError as e:
            logger.warning(f"Ignoring payload that is not a push event: {e}")
            return DispatchResult(status=DispatchStatus.IGNORED, error=str(e))
        return self.dispatch(event)
