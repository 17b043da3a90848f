"""Tests for cert_monitor.controller.status — collect_status."""
from __future__ import annotations

import datetime
from typing import Callable

from cert_monitor.certificates.bundle import IssuedBundle
from cert_monitor.certificates.cache import CertCache
from cert_monitor.certificates.persister import ArtifactPersister
from cert_monitor.config import CertConfig, MainConfig
from cert_monitor.controller.status import collect_status

NOW = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)


def _cache_cert(
    main_config: MainConfig,
    cert_factory: Callable[..., tuple[str, str]],
    common_name: str,
    not_after: datetime.datetime,
) -> None:
    cert_pem, key_pem = cert_factory(common_name=common_name, not_after=not_after)
    ArtifactPersister(CertCache(main_config.downloaded_cert_path)).save_raw_artifacts(
        common_name,
        IssuedBundle(certificate=cert_pem, chain="", issuing_ca="", private_key=key_pem),
    )


class TestCollectStatus:
    def test_missing_certificate_is_due(
        self, main_config: MainConfig, make_cert_config: Callable[..., CertConfig]
    ) -> None:
        (status,) = collect_status(main_config, [make_cert_config()], now=NOW)
        assert status.not_after is None
        assert status.cutoff is None
        assert status.renewal_due

    def test_fresh_certificate_not_due(
        self,
        main_config: MainConfig,
        make_cert_config: Callable[..., CertConfig],
        cert_factory: Callable[..., tuple[str, str]],
    ) -> None:
        not_after = NOW + datetime.timedelta(days=30)
        _cache_cert(main_config, cert_factory, "svc.example.com", not_after)
        cert_config = make_cert_config(reload_command="reload")
        cert_config.output.file.name.parent.mkdir(parents=True)
        cert_config.output.file.name.write_text("bundle")

        (status,) = collect_status(main_config, [cert_config], now=NOW)

        assert status.not_after == not_after
        assert status.cutoff == not_after - datetime.timedelta(days=7)
        assert not status.renewal_due
        assert status.reload_command == "reload"
        assert status.output_file.endswith("svc.example.com.pem")

    def test_certificate_inside_renewal_window_is_due(
        self,
        main_config: MainConfig,
        make_cert_config: Callable[..., CertConfig],
        cert_factory: Callable[..., tuple[str, str]],
    ) -> None:
        _cache_cert(main_config, cert_factory, "svc.example.com", NOW + datetime.timedelta(days=3))
        (status,) = collect_status(main_config, [make_cert_config()], now=NOW)
        assert status.renewal_due

    def test_missing_output_file_is_due(
        self,
        main_config: MainConfig,
        make_cert_config: Callable[..., CertConfig],
        cert_factory: Callable[..., tuple[str, str]],
    ) -> None:
        not_after = NOW + datetime.timedelta(days=30)
        _cache_cert(main_config, cert_factory, "svc.example.com", not_after)
        (status,) = collect_status(main_config, [make_cert_config()], now=NOW)
        assert status.not_after == not_after
        assert status.renewal_due

    def test_order_follows_descriptors(
        self, main_config: MainConfig, make_cert_config: Callable[..., CertConfig]
    ) -> None:
        configs = [make_cert_config(common_name=name) for name in ("b.example", "a.example")]
        statuses = collect_status(main_config, configs, now=NOW)
        assert [s.common_name for s in statuses] == ["b.example", "a.example"]

    def test_overflowing_window_has_no_cutoff(
        self,
        main_config: MainConfig,
        make_cert_config: Callable[..., CertConfig],
        cert_factory: Callable[..., tuple[str, str]],
    ) -> None:
        _cache_cert(main_config, cert_factory, "svc.example.com", NOW + datetime.timedelta(days=30))
        cert_config = make_cert_config(
            ttl=datetime.timedelta(hours=19_000_000), renew_ttl=datetime.timedelta(hours=18_000_000)
        )
        (status,) = collect_status(main_config, [cert_config], now=NOW)
        assert status.not_after is not None
        assert status.cutoff is None
        assert status.renewal_due
