"""Build the option set handed to the notifier tool.

The notifier takes ``--name value`` pairs and bare ``--name`` switches. Options come
from three places, later ones winning: the global ``options`` block, the matched
rule's ``options`` and the push event itself (committer, links).
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from .schemas import PushEvent

if TYPE_CHECKING:
    from .git_manager import MirrorState

NotifierArgs = Dict[str, Union[str, bool]]


def _is_unset(value: Any) -> bool:
    return value is None or value is False or value == "" or value == []


def _serialise(value: Any) -> Union[str, bool]:
    if value is True:
        return True
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def commit_link(event: PushEvent) -> str:
    return f"{event.repository_url}/commit/{event.after}"


def build_notifier_args(
    base_options: Mapping[str, Any],
    rule_options: Mapping[str, Any],
    event: PushEvent,
    mirror_state: Optional["MirrorState"] = None,
    silent_init: bool = False,
) -> NotifierArgs:
    options: Dict[str, Any] = dict(base_options)
    options.update(rule_options)

    if not options.get("uri"):
        options["uri"] = event.repository_url

    if event.committer_email:
        options["committer"] = event.committer_email
    if "committer" in options:
        # git-notifier calls the From: address "sender"
        options["sender"] = options.pop("committer")

    options.pop("compare", None)
    if event.created:
        options["link"] = commit_link(event)
    elif event.deleted:
        options["link"] = event.compare_url
    else:
        options["link"] = commit_link(event)
        options["compare"] = event.compare_url

    initialized = mirror_state is not None and mirror_state.initialized
    if initialized:
        options.pop("updateonly", None)
    elif silent_init:
        options["updateonly"] = True

    return {
        name: _serialise(value)
        for name, value in options.items()
        if not _is_unset(value)
    }


def to_argv(args: Mapping[str, Union[str, bool]]) -> List[str]:
    """Flatten built arguments into ``--name [value]`` tokens."""
    argv: List[str] = []
    for name, value in args.items():
        argv.append(f"--{name}")
        if value is not True:
            argv.append(str(value))
    return argv
