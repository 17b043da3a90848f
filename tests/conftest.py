"""Shared fixtures: real X.509 certificates and certificate descriptors."""
from __future__ import annotations

import datetime
from pathlib import Path
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_monitor.certificates.bundle import IssuedBundle
from cert_monitor.config import CertConfig, CertOutput, MainConfig, OutputFile, VaultSettings


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def build_cert_pem(
    common_name: str = "svc.example.com",
    not_after: datetime.datetime | None = None,
) -> tuple[str, str]:
    """Return ``(cert_pem, key_pem)`` for a self-signed certificate."""
    key = ec.generate_private_key(ec.SECP256R1())
    now = _utcnow()
    not_after = not_after or now + datetime.timedelta(days=30)
    not_before = min(now, not_after) - datetime.timedelta(days=1)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return cert_pem, key_pem


@pytest.fixture()
def cert_factory() -> Callable[..., tuple[str, str]]:
    return build_cert_pem


@pytest.fixture()
def issued_bundle() -> IssuedBundle:
    cert_pem, key_pem = build_cert_pem()
    return IssuedBundle(
        certificate=cert_pem.strip(),
        chain="-----BEGIN CERTIFICATE-----\nCHAIN\n-----END CERTIFICATE-----",
        issuing_ca="-----BEGIN CERTIFICATE-----\nCA\n-----END CERTIFICATE-----",
        private_key=key_pem.strip(),
    )


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture()
def main_config(cache_root: Path, tmp_path: Path) -> MainConfig:
    return MainConfig(
        vault=VaultSettings(
            role_id="role",
            secret_id="secret",
            base_url="http://127.0.0.1:8200/",
            login_path="/v1/auth/approle/login",
            cert_path="/v1/pki/issue/web",
        ),
        include_paths=[str(tmp_path / "conf.d" / "*.yml")],
        downloaded_cert_path=cache_root,
        check_interval=datetime.timedelta(hours=1),
    )


@pytest.fixture()
def make_cert_config(tmp_path: Path) -> Callable[..., CertConfig]:
    def _make(
        common_name: str = "svc.example.com",
        reload_command: str = "",
        items: list[str] | None = None,
        ttl: datetime.timedelta = datetime.timedelta(days=30),
        renew_ttl: datetime.timedelta = datetime.timedelta(days=7),
        user: str = "",
        group: str = "",
        output_name: Path | None = None,
        perm: int = 0o600,
    ) -> CertConfig:
        return CertConfig(
            common_name=common_name,
            alternate_names=[f"alt.{common_name}"],
            reload_command=reload_command,
            user=user,
            group=group,
            ttl=ttl,
            renew_ttl=renew_ttl,
            output=CertOutput(
                file=OutputFile(
                    name=output_name or tmp_path / "out" / f"{common_name}.pem",
                    perm=perm,
                ),
                items=items if items is not None else ["certificate", "chain", "privateKey"],
            ),
        )

    return _make
