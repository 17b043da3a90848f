"""Configuration models and YAML loading.

Two kinds of YAML files drive cert-monitor:

* the main configuration (backend credentials, cache root, check
  interval, and glob patterns pointing at certificate configurations);
* one certificate configuration per managed certificate.

Both are validated with pydantic models that reject unknown keys, so a
typo in a configuration file is reported instead of silently ignored.
Durations use the compact ``1h30m`` notation understood by the issuance
backend.
"""
from __future__ import annotations

import glob
import grp
import os
import pwd
import re
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from cert_monitor.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("/etc/cert-monitor.yml")

# ------------------------------------------------------------------
# Durations and file modes
# ------------------------------------------------------------------

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> timedelta:
    """Convert a duration setting into a :class:`~datetime.timedelta`.

    Parameters
    ----------
    value:
        A ``timedelta``, a number of seconds, or a string such as
        ``"720h"``, ``"1h30m"`` or ``"500ms"``. ``"0"`` is accepted as zero.

    Returns
    -------
    timedelta
        The parsed, non-negative duration.

    Raises
    ------
    ValueError
        If the value is negative or not a recognised duration.
    """
    if isinstance(value, timedelta):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    elif isinstance(value, (int, float)):
        result = timedelta(seconds=value)
    elif isinstance(value, str):
        text = value.strip()
        if text == "0":
            return timedelta(0)
        seconds = 0.0
        position = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != position:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            position = match.end()
        if not text or position != len(text):
            raise ValueError(f"invalid duration {value!r}")
        result = timedelta(seconds=seconds)
    else:
        raise ValueError(f"invalid duration {value!r}")

    if result < timedelta(0):
        raise ValueError(f"duration must not be negative, got {value!r}")
    return result


def format_duration(value: timedelta) -> str:
    """Render *value* in the compact form accepted by the backend.

    >>> format_duration(timedelta(hours=720))
    '720h'
    >>> format_duration(timedelta(hours=1, minutes=30, seconds=5))
    '1h30m5s'
    """
    total = value.total_seconds()
    whole = int(total)
    hours, remainder = divmod(whole, 3600)
    minutes, seconds = divmod(remainder, 60)
    fraction = total - whole

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if fraction:
        parts.append(f"{seconds + fraction:g}s")
    elif seconds or not parts:
        parts.append(f"{seconds}s")
    return "".join(parts)


def _parse_file_mode(value: Any) -> int:
    """Accept a YAML octal integer (``0600``) or an octal string (``"0600"``)."""
    if isinstance(value, bool):
        raise ValueError(f"invalid file mode {value!r}")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        try:
            mode = int(value.strip(), 8)
        except ValueError as exc:
            raise ValueError(f"invalid file mode {value!r}") from exc
    else:
        raise ValueError(f"invalid file mode {value!r}")
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"file mode out of range: {oct(mode)}")
    return mode


Duration = Annotated[timedelta, BeforeValidator(parse_duration)]
FileMode = Annotated[int, BeforeValidator(_parse_file_mode)]

_STRICT = ConfigDict(
    extra="forbid",
    populate_by_name=True,
    alias_generator=to_camel,
    frozen=True,
)


# ------------------------------------------------------------------
# Main configuration
# ------------------------------------------------------------------


class VaultSettings(BaseModel):
    """Connection settings for the secret-issuance backend.

    Parameters
    ----------
    role_id, secret_id:
        Credentials exchanged for a short-lived session token.
    base_url:
        Root URL of the backend, e.g. ``https://vault.example.com/``.
    login_path, cert_path:
        Endpoint paths resolved against *base_url*.
    timeout:
        Client-side timeout applied to every HTTP call.
    """

    model_config = _STRICT

    role_id: str
    secret_id: str = Field(repr=False)
    base_url: str
    login_path: str
    cert_path: str
    timeout: Duration = timedelta(seconds=30)


class MainConfig(BaseModel):
    """Global settings shared by every managed certificate."""

    model_config = _STRICT

    vault: VaultSettings
    include_paths: list[str] = Field(default_factory=list)
    downloaded_cert_path: Path
    check_interval: Duration = timedelta(hours=1)

    @field_validator("check_interval")
    @classmethod
    def _interval_positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("checkInterval must be greater than zero")
        return value

    def resolve_config_files(self) -> list[Path]:
        """Expand the include globs into a sorted list of existing files.

        A pattern that matches nothing contributes nothing; it is not an
        error, so an empty include directory simply manages no certificates.
        """
        files: set[Path] = set()
        for pattern in self.include_paths:
            for match in glob.glob(os.path.expanduser(pattern)):
                candidate = Path(match)
                if candidate.is_file():
                    files.add(candidate)
        return sorted(files)

    def load_cert_config(self, path: Path | str) -> "CertConfig":
        """Load and validate a single certificate configuration file."""
        data = _read_yaml(Path(path))
        try:
            return CertConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(
                f"Error validating certificate configuration '{path}': {exc}"
            ) from exc

    def load_cert_configs(
        self, cert_config_path: Optional[Path | str] = None
    ) -> list["CertConfig"]:
        """Load the certificate configurations for one batch.

        Parameters
        ----------
        cert_config_path:
            When given, only this file is loaded. Otherwise every file
            matched by ``include_paths`` is loaded.

        Raises
        ------
        ConfigError
            On the first file that cannot be read or validated.
        """
        if cert_config_path is not None:
            return [self.load_cert_config(cert_config_path)]
        return [self.load_cert_config(path) for path in self.resolve_config_files()]


# ------------------------------------------------------------------
# Certificate configuration
# ------------------------------------------------------------------


class OutputKind(str, Enum):
    """Supported layouts for the operator-visible output file."""

    BUNDLE = "bundle"


class OutputFile(BaseModel):
    """Where and how the operator-visible output file is written."""

    model_config = _STRICT

    kind: OutputKind = Field(default=OutputKind.BUNDLE, alias="type")
    name: Path
    perm: FileMode = 0o600


class CertOutput(BaseModel):
    """Output specification: target file plus ordered content items.

    Item names are checked when the bundle is assembled, not here.
    """

    model_config = _STRICT

    file: OutputFile
    items: list[str] = Field(default_factory=list)


class CertConfig(BaseModel):
    """Descriptor of one managed certificate.

    Parameters
    ----------
    common_name:
        Identity the certificate is issued for; also names its cache directory.
    alternate_names:
        Subject alternative names requested alongside the common name.
    ttl:
        Validity requested from the backend.
    renew_ttl:
        Renew this long before the cached certificate expires.
    reload_command:
        Shell command run once per batch after a renewal; may be empty.
    user, group:
        Owner of the output file. Empty means the current process owner.
    output:
        Output specification.
    """

    model_config = _STRICT

    common_name: str = ""
    alternate_names: list[str] = Field(default_factory=list)
    reload_command: str = ""
    user: str = ""
    group: str = ""
    ttl: Duration = timedelta(0)
    renew_ttl: Duration = timedelta(0)
    output: CertOutput

    @model_validator(mode="after")
    def _validate(self) -> "CertConfig":
        if not self.common_name:
            raise ValueError("commonName is not set")
        if not self.renew_ttl:
            raise ValueError("renewTtl is not set")
        if not self.ttl:
            raise ValueError("ttl is not set")
        if self.renew_ttl >= self.ttl:
            raise ValueError("renewTtl cannot be greater or equal than ttl")
        return self

    def resolve_uid(self) -> int:
        """Return the numeric user id owning the output file.

        Raises
        ------
        KeyError
            If the configured user does not exist.
        """
        if not self.user:
            return os.getuid()
        if self.user.isdigit():
            return int(self.user)
        return pwd.getpwnam(self.user).pw_uid

    def resolve_gid(self) -> int:
        """Return the numeric group id owning the output file.

        Raises
        ------
        KeyError
            If the configured group does not exist.
        """
        if not self.group:
            return os.getgid()
        if self.group.isdigit():
            return int(self.group)
        return grp.getgrnam(self.group).gr_gid


# ------------------------------------------------------------------
# Loading
# ------------------------------------------------------------------


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Error reading file '{path}': {exc}") from exc
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error parsing YAML content for file '{path}': {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Error parsing YAML content for file '{path}': expected a mapping")
    return data


def load_main_config(path: Path | str = DEFAULT_CONFIG_PATH) -> MainConfig:
    """Read and validate the main configuration file.

    Raises
    ------
    ConfigError
        If the file cannot be read, is not valid YAML, or fails validation.
    """
    data = _read_yaml(Path(path))
    try:
        return MainConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Error validating main configuration '{path}': {exc}") from exc


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "CertConfig",
    "CertOutput",
    "MainConfig",
    "OutputFile",
    "OutputKind",
    "VaultSettings",
    "format_duration",
    "load_main_config",
    "parse_duration",
]
