"""Batch renewal of managed certificates.

For each certificate descriptor the orchestrator asks the cache whether
renewal is due, fetches a new certificate from the backend, persists it,
and remembers the reload command it now owes. Reload commands are run once
at the end of the batch, one per distinct command, and only for
certificates actually renewed in that batch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from cert_monitor.certificates.cache import CertCache
from cert_monitor.certificates.persister import ArtifactPersister
from cert_monitor.config import CertConfig
from cert_monitor.controller.reload import Reloader
from cert_monitor.errors import CertMonitorError
from cert_monitor.vault.client import CertRequest, VaultClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOptions:
    """Options for a single batch run.

    Parameters
    ----------
    no_reload:
        Do not run reload commands for renewed certificates.
    fail_fast:
        Stop at the first per-certificate error instead of collecting all.
    """

    no_reload: bool = False
    fail_fast: bool = False


@dataclass
class BatchResult:
    """Outcome of one batch run.

    Parameters
    ----------
    renewed:
        Common names of certificates renewed in this batch.
    skipped:
        Common names of certificates not yet due for renewal.
    errors:
        ``(common_name, error)`` pairs for certificates that failed.
    aborted:
        True if fail-fast stopped the batch before every descriptor ran.
    reload_commands:
        Distinct reload commands handed to the reloader.
    """

    renewed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[tuple[str, CertMonitorError]] = field(default_factory=list)
    aborted: bool = False
    reload_commands: set[str] = field(default_factory=set)

    @property
    def renewed_count(self) -> int:
        return len(self.renewed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.errors


class RenewalOrchestrator:
    """Drives renewal of a batch of certificate descriptors.

    Descriptors are processed one after another; a batch shares nothing
    between descriptors except its set of pending reload commands.

    Parameters
    ----------
    cache:
        Answers whether each certificate is due for renewal.
    client:
        Fetches new certificates from the issuance backend.
    persister:
        Writes issued material to disk.
    reloader:
        Runs pending reload commands at the end of the batch.
    """

    def __init__(
        self,
        cache: CertCache,
        client: VaultClient,
        persister: ArtifactPersister,
        reloader: Reloader,
    ) -> None:
        self._cache = cache
        self._client = client
        self._persister = persister
        self._reloader = reloader

    def run_batch(
        self,
        cert_configs: Iterable[CertConfig],
        options: BatchOptions = BatchOptions(),
    ) -> BatchResult:
        """Renew every due certificate in *cert_configs*.

        Parameters
        ----------
        cert_configs:
            Snapshot of certificate descriptors for this batch.
        options:
            Reload and fail-fast behaviour.

        Returns
        -------
        BatchResult
            Renewed and skipped certificates plus per-certificate errors.
        """
        result = BatchResult()
        pending_reloads: set[str] = set()

        for cert_config in cert_configs:
            name = cert_config.common_name
            if not self._cache.is_renewal_due(cert_config):
                result.skipped.append(name)
                continue

            try:
                self.renew(cert_config)
            except CertMonitorError as exc:
                logger.error("Failed to renew certificate %s: %s", name, exc)
                result.errors.append((name, exc))
                if options.fail_fast:
                    result.aborted = True
                    break
                continue

            result.renewed.append(name)
            if not options.no_reload:
                pending_reloads.add(cert_config.reload_command)

        if pending_reloads:
            result.reload_commands = set(pending_reloads)
            self._reloader.reload(pending_reloads)

        logger.info(
            "Batch complete: %d renewed, %d skipped, %d failed",
            result.renewed_count,
            result.skipped_count,
            len(result.errors),
        )
        return result

    def renew(self, cert_config: CertConfig) -> None:
        """Fetch and persist a new certificate for *cert_config*, unconditionally."""
        logger.info(
            "Generating certificate for commonName %s AlternateNames %s",
            cert_config.common_name,
            cert_config.alternate_names,
        )
        bundle = self._client.fetch_new_certificate(CertRequest.from_config(cert_config))
        self._persister.persist(cert_config, bundle)
