"""Client for the secret-issuance backend."""
from __future__ import annotations

from cert_monitor.vault.client import CertRequest, VaultClient

__all__ = ["CertRequest", "VaultClient"]
