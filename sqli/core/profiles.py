"""
Connection profile store

Named connection definitions persisted in ``<config-dir>/config.yaml``:

    connections:
      - name: local
        driver: postgresql
        host: localhost
        port: 5432
        database: app
        user: postgres
      - name: scratch
        url: duckdb:///home/me/scratch.duckdb

Lookups by name are case-insensitive; stored names keep the case they were
saved with. Every mutation rewrites the whole file atomically.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import yaml

from sqli.core.errors import ConfigError, ProfileNotFound

DEFAULT_DRIVER = "postgresql"
DEFAULT_PORT = 5432
# Servers addressed by host/port/database; file databases use a URL
SUPPORTED_DRIVERS = ("postgresql", "postgres", "mysql", "mariadb")


@dataclass(frozen=True)
class ConnectionProfile:
    """A named connection target: either a full URL or discrete fields."""

    name: str
    url: Optional[str] = None
    driver: str = DEFAULT_DRIVER
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    server_ca: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None

    @property
    def requires_password(self) -> bool:
        return self.url is None and self.password is None

    def to_url(self, password: Optional[str] = None) -> str:
        """
        Build the connection URL for this profile.

        Args:
            password: Overrides the stored password (e.g. one typed at a prompt)

        Returns:
            A URL understood by the driver layer
        """
        if self.url:
            return self.url

        pwd = password if password is not None else self.password
        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if pwd is not None:
                auth += ":" + quote(pwd, safe="")
            auth += "@"

        host = self.host or "localhost"
        port = self.port or DEFAULT_PORT
        url = f"{self.driver}://{auth}{host}:{port}/{quote(self.database or '', safe='')}"

        params = {}
        if self.server_ca:
            params["sslmode"] = "verify-ca"
            params["sslrootcert"] = self.server_ca
        if self.client_cert:
            params["sslcert"] = self.client_cert
        if self.client_key:
            params["sslkey"] = self.client_key
        if params:
            url += "?" + urlencode(params)
        return url

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the config file representation, omitting unset fields."""
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if self.url and self.driver == DEFAULT_DRIVER:
            data.pop("driver", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionProfile":
        """Build a profile from a config file mapping."""
        if not isinstance(data, dict):
            raise ConfigError(f"Connection entry must be a mapping, got {type(data).__name__}")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigError("Connection entry is missing a 'name'")

        known = {f.name for f in fields(cls)}
        # Older config files store the driver under 'conn'
        values = dict(data)
        if "conn" in values and "driver" not in values:
            values["driver"] = values.pop("conn")
        unknown = set(values) - known
        if unknown:
            raise ConfigError(
                f"Connection '{name}' has unknown keys: {', '.join(sorted(unknown))}"
            )

        if values.get("port") is not None:
            try:
                values["port"] = int(values["port"])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Connection '{name}' has an invalid port: {values['port']!r}") from e

        for key, value in list(values.items()):
            if key != "port" and value is not None and not isinstance(value, str):
                values[key] = str(value)

        values.setdefault("driver", DEFAULT_DRIVER)
        return cls(**values)

    def __str__(self) -> str:
        if self.url:
            return f"{self.name} ({self.url})"
        return f"{self.name} ({self.driver}://{self.host or 'localhost'}:{self.port or DEFAULT_PORT}/{self.database or ''})"


class ProfileStore:
    """
    CRUD over connection profiles backed by a YAML file.

    The store loads once on construction and keeps the set in memory; each
    ``put``/``delete`` rewrites the file from memory through a temporary file
    and ``os.replace`` so a crash never leaves a half-written config behind.

    With ``strict=False`` an unreadable config leaves the store empty with the
    error in ``load_error``, and writes are refused until a ``load`` succeeds
    so the broken file is never overwritten.
    """

    def __init__(self, path: Path, strict: bool = True):
        self.path = Path(path)
        self._profiles: List[ConnectionProfile] = []
        self.load_error: Optional[ConfigError] = None
        try:
            self.load()
        except ConfigError as e:
            if strict:
                raise
            self.load_error = e

    def load(self) -> None:
        """(Re)load profiles from disk, creating an empty config if absent."""
        if not self.path.exists():
            self._profiles = []
            self._write()
            self.load_error = None
            return

        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {self.path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {self.path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {self.path} must contain a mapping")

        entries = raw.get("connections") or []
        if not isinstance(entries, list):
            raise ConfigError("'connections' must be a list")

        profiles = [ConnectionProfile.from_dict(entry) for entry in entries]
        seen = set()
        for profile in profiles:
            key = profile.name.casefold()
            if key in seen:
                raise ConfigError(f"Duplicate connection name: {profile.name}")
            seen.add(key)
        self._profiles = profiles
        self.load_error = None

    def list(self) -> List[ConnectionProfile]:
        return list(self._profiles)

    def names(self) -> List[str]:
        return [p.name for p in self._profiles]

    def find(self, name: str) -> Optional[ConnectionProfile]:
        """Case-insensitive lookup; returns None when absent."""
        key = name.casefold()
        for profile in self._profiles:
            if profile.name.casefold() == key:
                return profile
        return None

    def get(self, name: str) -> ConnectionProfile:
        profile = self.find(name)
        if profile is None:
            raise ProfileNotFound(name)
        return profile

    def put(self, profile: ConnectionProfile) -> None:
        """Insert or overwrite (matching names case-insensitively), then persist."""
        self._check_writable()
        if not profile.name:
            raise ConfigError("Connection name must not be empty")

        previous = list(self._profiles)
        key = profile.name.casefold()
        updated = []
        replaced = False
        for existing in self._profiles:
            if existing.name.casefold() == key:
                if not replaced:
                    updated.append(profile)
                    replaced = True
            else:
                updated.append(existing)
        if not replaced:
            updated.append(profile)

        self._profiles = updated
        try:
            self._write()
        except ConfigError:
            self._profiles = previous
            raise

    def delete(self, name: str) -> None:
        self._check_writable()
        target = self.get(name)
        previous = list(self._profiles)
        self._profiles = [p for p in self._profiles if p is not target]
        try:
            self._write()
        except ConfigError:
            self._profiles = previous
            raise

    def _check_writable(self) -> None:
        if self.load_error is not None:
            raise ConfigError(f"Connections are read-only until the config file is fixed: {self.load_error}")

    def _write(self) -> None:
        document = {"connections": [p.to_dict() for p in self._profiles]}
        text = yaml.safe_dump(document, sort_keys=False, default_flow_style=False)

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise ConfigError(f"Cannot write config file {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
