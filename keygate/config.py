"""Config loading for KeyGate.

Reads `.keygate/config.yaml` (or `~/.keygate/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. KEYGATE_CONFIG environment variable (if set)
  3. `.keygate/config.yaml` (working directory — for development)
  4. `~/.keygate/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  KEYGATE_PORT        — overrides server.port
  KEYGATE_MASTER_KEY  — overrides gate.master_key
  KEYGATE_STORE_PATH  — overrides store.path
  KEYGATE_CONFIG      — sets an explicit config file path to try first

The `admin.auto_revoke_on_departure` flag is the only value written back at
runtime (see save_auto_revoke()); the departure handler re-reads it from the
file on every event (see reload_auto_revoke()).
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from keygate.constants import DEFAULT_STORE_PATH
from keygate.credentials.errors import PersistenceError
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (KEYGATE_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".keygate/config.yaml",
    os.path.expanduser("~/.keygate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class StoreConfig:
    """Credential file location."""

    path: str = DEFAULT_STORE_PATH


@dataclass
class GateConfig:
    """Access gate configuration.

    master_key: static secret accepted in addition to issued credentials.
                Empty string disables the master bypass.
    """

    master_key: str = ""


@dataclass
class AdminConfig:
    """Administrative command surface configuration.

    owner_id:                 the single identity allowed to run owner commands.
    allowed_channel:          when set, self-service commands only work there.
    auto_revoke_on_departure: revoke every credential of an identity that leaves.
    """

    owner_id: Optional[str] = None
    allowed_channel: Optional[str] = None
    auto_revoke_on_departure: bool = False


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 6207


@dataclass
class Config:
    """Root configuration object populated from .keygate/config.yaml.

    All fields have safe defaults — KeyGate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    store: StoreConfig = field(default_factory=StoreConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded config file (target of save_auto_revoke)

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.
        Identity ids are coerced to str so numeric YAML ids compare equal to
        the ids handed over by the identity platform.

        Raises:
            SystemExit(1): On a non-boolean admin.auto_revoke_on_departure.
        """
        store_raw = raw.get("store") or {}
        store = StoreConfig(path=str(store_raw.get("path", DEFAULT_STORE_PATH)))

        gate_raw = raw.get("gate") or {}
        gate = GateConfig(master_key=str(gate_raw.get("master_key") or ""))

        admin_raw = raw.get("admin") or {}
        auto_revoke = admin_raw.get("auto_revoke_on_departure", False)
        if not isinstance(auto_revoke, bool):
            msg = (
                "CONFIG ERROR: admin.auto_revoke_on_departure must be true or false, "
                f"got {auto_revoke!r}."
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)
        owner_id = admin_raw.get("owner_id")
        allowed_channel = admin_raw.get("allowed_channel")
        admin = AdminConfig(
            owner_id=str(owner_id) if owner_id is not None else None,
            allowed_channel=str(allowed_channel) if allowed_channel is not None else None,
            auto_revoke_on_departure=auto_revoke,
        )

        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 6207),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            store=store,
            gate=gate,
            admin=admin,
            server=server,
            path=path,
        )

    def to_dict(self) -> dict:
        """Serialize back to the YAML layout read by from_dict()."""
        return {
            "version": self.version,
            "store": {"path": self.store.path},
            "gate": {"master_key": self.gate.master_key},
            "admin": {
                "owner_id": self.admin.owner_id,
                "allowed_channel": self.admin.allowed_channel,
                "auto_revoke_on_departure": self.admin.auto_revoke_on_departure,
            },
            "server": {"host": self.server.host, "port": self.server.port},
        }


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate KeyGate configuration.

    Search order:
      1. ``config_path`` argument
      2. ``KEYGATE_CONFIG`` environment variable
      3. ``.keygate/config.yaml``
      4. ``~/.keygate/config.yaml``

    If no file is found at any of these paths, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied last, whether or not a file was found.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, or invalid ``KEYGATE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("KEYGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = (
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "KeyGate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        msg = f"CONFIG ERROR: Could not read {found_path}: {exc}"
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    version = raw.get("version")
    if version is None:
        msg = (
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        msg = (
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if not config.gate.master_key:
        logger.warning("No master key configured — only issued credentials are accepted")
    if config.admin.owner_id is None:
        logger.warning("No admin.owner_id configured — owner commands are disabled")

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        store_path=config.store.path,
        auto_revoke_on_departure=config.admin.auto_revoke_on_departure,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If KEYGATE_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("KEYGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            msg = (
                f"CONFIG ERROR: KEYGATE_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)

    env_master = os.environ.get("KEYGATE_MASTER_KEY")
    if env_master is not None:
        config.gate.master_key = env_master

    env_store = os.environ.get("KEYGATE_STORE_PATH")
    if env_store:
        config.store.path = env_store


# ─── Runtime write-back ───────────────────────────────────────────────────────


def reload_auto_revoke(config: Config) -> bool:
    """Re-read admin.auto_revoke_on_departure from ``config.path``.

    Picks up hand edits made while the process runs. When no file was
    loaded, or it cannot be read or holds a non-boolean value, the cached
    flag is kept (and the problem logged).

    Returns:
        The effective flag, also stored on ``config``.
    """
    if not config.path or not os.path.isfile(config.path):
        return config.admin.auto_revoke_on_departure

    try:
        with open(config.path) as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not re-read config — keeping cached auto-revoke", error=str(exc))
        return config.admin.auto_revoke_on_departure

    admin_raw = raw.get("admin") if isinstance(raw, dict) else None
    enabled = (admin_raw or {}).get("auto_revoke_on_departure", False)
    if not isinstance(enabled, bool):
        logger.warning(
            "Ignoring non-boolean admin.auto_revoke_on_departure",
            path=config.path,
            got=repr(enabled),
        )
        return config.admin.auto_revoke_on_departure

    if enabled != config.admin.auto_revoke_on_departure:
        logger.info("Auto-revoke setting changed on disk", path=config.path, enabled=enabled)
    config.admin.auto_revoke_on_departure = enabled
    return enabled


def save_auto_revoke(config: Config, enabled: bool, config_path: Optional[str] = None) -> str:
    """Persist admin.auto_revoke_on_departure and update ``config`` in place.

    The file is re-read before writing so hand edits made while the process
    runs are kept; only the flag changes. When no config file was loaded,
    ``.keygate/config.yaml`` is created from the current in-memory config.

    The in-memory flag is only updated once the write succeeded.

    Returns:
        The path written.

    Raises:
        PersistenceError: If the file cannot be read back or written.
    """
    target = config_path or config.path or DEFAULT_CONFIG_PATHS[0]
    target = os.path.abspath(os.path.expanduser(target))

    try:
        if os.path.isfile(target):
            with open(target) as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, dict):
                raise PersistenceError(f"{target} is not a YAML mapping")
        else:
            raw = config.to_dict()
        admin_raw = raw.get("admin") or {}
        admin_raw["auto_revoke_on_departure"] = enabled
        raw["admin"] = admin_raw

        parent = os.path.dirname(target)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(target, "w") as fh:
            yaml.safe_dump(raw, fh, sort_keys=False)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to save auto-revoke setting", path=target, error=str(exc))
        raise PersistenceError(f"Could not write {target}: {exc}") from exc

    config.admin.auto_revoke_on_departure = enabled
    config.path = target
    logger.info("Auto-revoke setting saved", path=target, enabled=enabled)
    return target
