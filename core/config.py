"""Configuration snapshot, loader and hot-reload support.

The loader turns a YAML (or JSON) file into an immutable ``Config``. ``ConfigStore``
publishes one snapshot at a time: a reload parses the whole file before swapping the
reference, so readers never observe a partially updated rule set and a broken file
leaves the previous snapshot active.
"""
from __future__ import annotations

import asyncio
import ipaddress
import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .metrics import CONFIG_RELOAD_COUNTER

SUPPORTED_PROTOCOLS = ("git", "ssh", "https")
DEFAULT_STATE_FILE = "git-notifier-state.dat"

OptionValue = Union[bool, int, str, List[str]]


class RepositoryRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pattern: str = Field(..., alias="id")
    protocol: str = "git"
    options: Dict[str, OptionValue] = Field(default_factory=dict)

    @field_validator("pattern")
    @classmethod
    def _compile_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value

    @field_validator("protocol")
    @classmethod
    def _normalise_protocol(cls, value: str) -> str:
        return value.strip().lower()

    def matches(self, identifier: str) -> bool:
        return re.search(self.pattern, identifier) is not None


class Config(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    notifier: str
    workdir: str
    silent_init: bool = True
    monitor_interval: float = 5
    notifier_timeout: float = 300
    git_timeout: float = 120
    git_host: str = "github.com"
    state_file: str = DEFAULT_STATE_FILE
    allowed_networks: List[str] = Field(default_factory=list)
    options: Dict[str, OptionValue] = Field(default_factory=dict)
    repositories: List[RepositoryRule] = Field(default_factory=list)

    @field_validator("notifier", "workdir")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("allowed_networks")
    @classmethod
    def _check_networks(cls, value: List[str]) -> List[str]:
        for net in value:
            try:
                ipaddress.ip_network(net, strict=False)
            except ValueError as e:
                raise ValueError(f"invalid network {net!r}: {e}") from e
        return value


def parse_config(data: object, source: str = "<memory>") -> Config:
    """Validate already-decoded configuration data."""
    if not isinstance(data, dict):
        raise ConfigurationError(source, "top level must be a mapping")
    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(source, str(e)) from e

    for rule in config.repositories:
        if rule.protocol not in SUPPORTED_PROTOCOLS:
            logger.warning(
                f"Rule {rule.pattern!r} uses unsupported protocol "
                f"{rule.protocol!r}; it will be skipped when matching"
            )
    return config


def load_config(path: Union[str, Path]) -> Config:
    p = Path(path)
    try:
        with open(str(p), encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(str(p), f"cannot read file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(str(p), f"cannot parse file: {e}") from e
    return parse_config(data, source=str(p))


def default_config_path() -> str:
    load_dotenv()
    return os.getenv("NOTIFY_CONFIG", "config.yaml")


class ConfigStore:
    """Holds the active configuration snapshot for one config file."""

    def __init__(self, path: Union[str, Path], config: Optional[Config] = None):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        if config is None:
            config = load_config(self.path)
            self._mtime = self._read_mtime()
        self._config = config

    @property
    def current(self) -> Config:
        return self._config

    def _read_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def changed(self) -> bool:
        mtime = self._read_mtime()
        return mtime is not None and mtime != self._mtime

    def reload(self) -> bool:
        """Parse the file and publish it. Returns False if the old snapshot was kept."""
        mtime = self._read_mtime()
        try:
            config = load_config(self.path)
        except ConfigurationError as e:
            CONFIG_RELOAD_COUNTER.labels(result="error").inc()
            logger.error(f"Config reload failed, keeping previous configuration: {e}")
            # Remember the broken file so the watcher does not retry it every tick
            self._mtime = mtime
            return False

        with self._lock:
            self._config = config
            self._mtime = mtime
        CONFIG_RELOAD_COUNTER.labels(result="ok").inc()
        logger.info(
            f"Loaded configuration from {self.path} "
            f"({len(config.repositories)} repository rules)"
        )
        return True


class ConfigWatcher:
    """Polls the config file's mtime and reloads it when it changes.

    The interval is read from the active snapshot on every tick, so a reload
    that changes ``monitor_interval`` (including to or from 0) takes effect on
    the next sleep. While monitoring is disabled the loop idles without
    checking the file.
    """

    IDLE_INTERVAL = 5.0

    def __init__(self, store: ConfigStore, interval: Optional[float] = None):
        self.store = store
        self._interval = interval

    @property
    def interval(self) -> float:
        if self._interval is not None:
            return self._interval
        return self.store.current.monitor_interval

    def check(self) -> bool:
        if self.store.changed():
            logger.info(f"Config file {self.store.path} changed, reloading")
            return self.store.reload()
        return False

    async def start(self):
        logger.info(f"Watching {self.store.path} (interval {self.interval}s)")
        enabled = None
        while True:
            interval = self.interval
            if (interval > 0) != enabled:
                enabled = interval > 0
                if not enabled:
                    logger.info("Config monitoring disabled")
            if enabled:
                try:
                    self.check()
                except Exception as e:
                    logger.error(f"Config watcher error: {e}")

            await asyncio.sleep(interval if enabled else self.IDLE_INTERVAL)
