"""Cache of the last issued certificate material, one directory per identity.

The cache is the authoritative record of what was last issued. Renewal
decisions are taken from the cached ``cert.pem`` rather than from the
operator-visible output file, whose layout is arbitrary.
"""
from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Optional

from cryptography import x509

from cert_monitor.config import CertConfig

logger = logging.getLogger(__name__)

CERT_FILE_NAME = "cert.pem"
CHAIN_FILE_NAME = "chain.pem"
ISSUING_CA_FILE_NAME = "issuing_ca.pem"
PRIVATE_KEY_FILE_NAME = "private.pem"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def renewal_cutoff(
    not_after: datetime.datetime, renew_ttl: datetime.timedelta
) -> Optional[datetime.datetime]:
    """Return ``not_after - renew_ttl``, or None if that predates ``datetime.min``."""
    try:
        return not_after - renew_ttl
    except OverflowError:
        return None


class CertCache:
    """Filesystem cache of issued certificates.

    Material for an identity lives under ``<cache_root>/<common_name>/`` as
    ``cert.pem``, ``chain.pem``, ``issuing_ca.pem`` and ``private.pem``.

    Parameters
    ----------
    cache_root:
        Root directory of the cache. It is not created until something is
        written into it.
    """

    def __init__(self, cache_root: Path) -> None:
        self._cache_root = Path(cache_root)

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    def cert_dir(self, common_name: str) -> Path:
        """Return the cache directory for *common_name*."""
        safe_name = common_name.replace("/", "_").replace("\\", "_")
        # "." and ".." would resolve to the cache root or its parent
        if safe_name in (".", ".."):
            safe_name = safe_name.replace(".", "_")
        return self._cache_root / safe_name

    def cert_path(self, common_name: str) -> Path:
        return self.cert_dir(common_name) / CERT_FILE_NAME

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load_certificate(self, common_name: str) -> x509.Certificate:
        """Read and parse the cached leaf certificate for *common_name*.

        Raises
        ------
        OSError
            If the cached file is missing or unreadable.
        ValueError
            If the content is not a PEM-encoded X.509 certificate.
        """
        content = self.cert_path(common_name).read_bytes()
        return x509.load_pem_x509_certificate(content)

    def cached_expiry(self, common_name: str) -> Optional[datetime.datetime]:
        """Return the cached certificate's ``NotAfter``, or None if unavailable."""
        try:
            return self.load_certificate(common_name).not_valid_after_utc
        except (OSError, ValueError):
            return None

    # ------------------------------------------------------------------
    # Renewal decision
    # ------------------------------------------------------------------

    def is_renewal_due(
        self,
        cert_config: CertConfig,
        now: Optional[datetime.datetime] = None,
    ) -> bool:
        """Decide whether *cert_config*'s certificate must be renewed.

        Any doubt about the current certificate means renewal: a missing
        output file, a missing or unreadable cached certificate, or one that
        does not parse. Otherwise renewal is due once *now* has passed
        ``NotAfter - renew_ttl``.

        Parameters
        ----------
        cert_config:
            The certificate descriptor.
        now:
            Reference time, defaults to the current UTC time.

        Returns
        -------
        bool
            True if a new certificate should be requested.
        """
        output_file = cert_config.output.file.name
        if not output_file.exists():
            logger.info("Output certificate file %s does not exist.", output_file)
            return True

        cert_file = self.cert_path(cert_config.common_name)
        if not cert_file.exists():
            logger.info("Cached certificate file %s does not exist.", cert_file)
            return True

        try:
            cert = self.load_certificate(cert_config.common_name)
        except OSError as exc:
            logger.warning("Error reading file %s: %s", cert_file, exc)
            return True
        except ValueError as exc:
            logger.warning("Failed to parse certificate %s: %s", cert_file, exc)
            return True

        not_after = cert.not_valid_after_utc
        cutoff = renewal_cutoff(not_after, cert_config.renew_ttl)
        if cutoff is None:
            logger.warning(
                "Renewal window %s of %s reaches before the earliest representable date.",
                cert_config.renew_ttl,
                cert_file,
            )
            return True
        reference = now or _utcnow()
        if reference > cutoff:
            logger.info(
                "Certificate %s due for renewal: expires %s, cutoff %s",
                cert_file,
                not_after.isoformat(),
                cutoff.isoformat(),
            )
            return True
        return False
