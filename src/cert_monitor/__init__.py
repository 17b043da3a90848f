"""cert-monitor — renew X.509 certificates from a secret-issuance backend.

Certificates described in YAML configuration files are renewed ahead of
expiry, written to a per-identity cache and to an operator-defined output
file, and the services depending on them are reloaded.

Quick start
-----------
::

    from cert_monitor import exec_once

    result = exec_once("/etc/cert-monitor.yml")
    print(result.renewed, result.errors)
"""
from __future__ import annotations

__version__: str = "0.1.0"

from cert_monitor.certificates import ArtifactPersister, CertCache, IssuedBundle, OutputItem
from cert_monitor.config import (
    CertConfig,
    MainConfig,
    OutputKind,
    VaultSettings,
    load_main_config,
)
from cert_monitor.controller import (
    BatchOptions,
    BatchResult,
    Reloader,
    RenewalOrchestrator,
    SchedulingLoop,
    ShellReloader,
)
from cert_monitor.controller.service import exec_loop, exec_once
from cert_monitor.errors import (
    AuthError,
    CertMonitorError,
    ConfigError,
    IssuanceError,
    IssueError,
    OutputSpecError,
    OwnershipError,
    PersistError,
    ProtocolError,
    ReloadExecutionError,
    TransportError,
)
from cert_monitor.vault import CertRequest, VaultClient

__all__ = [
    "__version__",
    # configuration
    "CertConfig",
    "MainConfig",
    "OutputKind",
    "VaultSettings",
    "load_main_config",
    # certificates
    "ArtifactPersister",
    "CertCache",
    "IssuedBundle",
    "OutputItem",
    # backend
    "CertRequest",
    "VaultClient",
    # controller
    "BatchOptions",
    "BatchResult",
    "Reloader",
    "RenewalOrchestrator",
    "SchedulingLoop",
    "ShellReloader",
    "exec_loop",
    "exec_once",
    # errors
    "AuthError",
    "CertMonitorError",
    "ConfigError",
    "IssuanceError",
    "IssueError",
    "OutputSpecError",
    "OwnershipError",
    "PersistError",
    "ProtocolError",
    "ReloadExecutionError",
    "TransportError",
]
