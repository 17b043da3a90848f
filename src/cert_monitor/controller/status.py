"""Status of managed certificates as seen from the cache."""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Iterable, Optional

from cert_monitor.certificates.cache import CertCache, renewal_cutoff
from cert_monitor.config import CertConfig, MainConfig


@dataclass(frozen=True)
class CertStatus:
    """Renewal status of one managed certificate.

    ``not_after`` and ``cutoff`` are None when no readable certificate is
    cached, in which case renewal is always due.
    """

    common_name: str
    not_after: Optional[datetime.datetime]
    cutoff: Optional[datetime.datetime]
    renewal_due: bool
    output_file: str
    reload_command: str


def collect_status(
    main_config: MainConfig,
    cert_configs: Iterable[CertConfig],
    now: Optional[datetime.datetime] = None,
) -> list[CertStatus]:
    """Build a :class:`CertStatus` for every descriptor in *cert_configs*."""
    cache = CertCache(main_config.downloaded_cert_path)
    statuses: list[CertStatus] = []
    for cert_config in cert_configs:
        not_after = cache.cached_expiry(cert_config.common_name)
        statuses.append(
            CertStatus(
                common_name=cert_config.common_name,
                not_after=not_after,
                cutoff=renewal_cutoff(not_after, cert_config.renew_ttl) if not_after else None,
                renewal_due=cache.is_renewal_due(cert_config, now=now),
                output_file=str(cert_config.output.file.name),
                reload_command=cert_config.reload_command,
            )
        )
    return statuses
