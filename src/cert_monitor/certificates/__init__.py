"""Certificate material handling: cache, bundle assembly, and persistence.

The cache answers whether a certificate is due for renewal; the persister
writes newly issued material into the cache and the operator-visible
output file.
"""
from __future__ import annotations

from cert_monitor.certificates.bundle import IssuedBundle, OutputItem, render_bundle
from cert_monitor.certificates.cache import CertCache
from cert_monitor.certificates.persister import ArtifactPersister

__all__ = [
    "ArtifactPersister",
    "CertCache",
    "IssuedBundle",
    "OutputItem",
    "render_bundle",
]
