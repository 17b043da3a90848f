"""Write issued certificate material to the cache and to the output file.

Raw artifacts always land in the cache before the operator-visible output
file is touched, so a failure part-way never leaves the output newer than
the cache. Nothing is rolled back on failure.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from cert_monitor.certificates.bundle import IssuedBundle, render_bundle
from cert_monitor.certificates.cache import (
    CERT_FILE_NAME,
    CHAIN_FILE_NAME,
    ISSUING_CA_FILE_NAME,
    PRIVATE_KEY_FILE_NAME,
    CertCache,
)
from cert_monitor.config import CertConfig, OutputKind
from cert_monitor.errors import OutputSpecError, OwnershipError, PersistError

logger = logging.getLogger(__name__)

PUBLIC_FILE_MODE = 0o644
PRIVATE_FILE_MODE = 0o600
CACHE_DIR_MODE = 0o755


def _write_file(path: Path, content: str, mode: int) -> None:
    """Write *content* to *path* and force its permission bits to *mode*.

    The content is encoded before the file is opened, so text that cannot
    be encoded leaves an existing file untouched.
    """
    data = content.encode("utf-8")
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as handle:
        os.fchmod(handle.fileno(), mode)
        handle.write(data)


def _dir_mode(file_mode: int) -> int:
    """Directory mode for *file_mode*: search bit added wherever read is granted."""
    # output directories stay traversable for whoever may read the file
    return file_mode | ((file_mode & 0o444) >> 2)


class ArtifactPersister:
    """Persists an :class:`IssuedBundle` for one certificate descriptor.

    Parameters
    ----------
    cache:
        Cache receiving the raw artifacts.
    """

    def __init__(self, cache: CertCache) -> None:
        self._cache = cache
        self._writers: dict[OutputKind, Callable[[CertConfig, IssuedBundle], None]] = {
            OutputKind.BUNDLE: self._save_bundle_file,
        }

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def persist(self, cert_config: CertConfig, bundle: IssuedBundle) -> None:
        """Save the raw artifacts, then the output file.

        Raises
        ------
        PersistError
            On the first write failure. ``OutputSpecError`` and
            ``OwnershipError`` narrow the cause.
        """
        self.save_raw_artifacts(cert_config.common_name, bundle)
        self.save_output_file(cert_config, bundle)

    def save_raw_artifacts(self, common_name: str, bundle: IssuedBundle) -> None:
        """Write cert, chain, issuing CA and private key into the cache.

        The first failing write aborts the remaining ones.
        """
        cert_dir = self._cache.cert_dir(common_name)
        artifacts = (
            (CERT_FILE_NAME, bundle.certificate, PUBLIC_FILE_MODE),
            (CHAIN_FILE_NAME, bundle.chain, PUBLIC_FILE_MODE),
            (ISSUING_CA_FILE_NAME, bundle.issuing_ca, PUBLIC_FILE_MODE),
            (PRIVATE_KEY_FILE_NAME, bundle.private_key, PRIVATE_FILE_MODE),
        )
        try:
            cert_dir.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistError(f"can't create directory {cert_dir}: {exc}") from exc

        for file_name, content, mode in artifacts:
            path = cert_dir / file_name
            logger.info("Saving certificate file %s", path)
            try:
                _write_file(path, content, mode)
            except (OSError, UnicodeError) as exc:
                raise PersistError(f"unable to write file {path}: {exc}") from exc

    def save_output_file(self, cert_config: CertConfig, bundle: IssuedBundle) -> None:
        """Write the operator-visible output file for *cert_config*."""
        kind = cert_config.output.file.kind
        writer = self._writers.get(kind)
        if writer is None:
            raise OutputSpecError(f"output.file.type {kind.value!r} is not supported")
        writer(cert_config, bundle)

    # ------------------------------------------------------------------
    # Output kinds
    # ------------------------------------------------------------------

    def _save_bundle_file(self, cert_config: CertConfig, bundle: IssuedBundle) -> None:
        output_file = cert_config.output.file
        path = output_file.name
        content = render_bundle(cert_config.output.items, bundle)

        logger.info("Saving output file %s", path)
        try:
            path.parent.mkdir(mode=_dir_mode(output_file.perm), parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistError(f"can't create directory {path.parent}: {exc}") from exc
        try:
            _write_file(path, content, output_file.perm)
        except (OSError, UnicodeError) as exc:
            raise PersistError(f"unable to write bundle file {path}: {exc}") from exc

        self._apply_ownership(cert_config, path)

    def _apply_ownership(self, cert_config: CertConfig, path: Path) -> None:
        try:
            uid = cert_config.resolve_uid()
        except KeyError as exc:
            raise OwnershipError(f"unknown user {cert_config.user!r}") from exc
        try:
            gid = cert_config.resolve_gid()
        except KeyError as exc:
            raise OwnershipError(f"unknown group {cert_config.group!r}") from exc

        try:
            os.chown(path, uid, gid)
        except OSError as exc:
            raise OwnershipError(
                f"failed to change file ownership on {path} to {uid}:{gid}: {exc}"
            ) from exc
