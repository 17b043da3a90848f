"""HTTP client for the secret-issuance backend.

Issuing a certificate takes two calls: a login exchanging role/secret
credentials for a session token, then a certificate request authenticated
with that token. Tokens are never cached between certificates and failed
calls are never retried here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional
from urllib.parse import urljoin

import requests

from cert_monitor.certificates.bundle import IssuedBundle
from cert_monitor.config import CertConfig, VaultSettings, format_duration
from cert_monitor.errors import AuthError, IssueError, ProtocolError, TransportError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Vault-Token"

STEP_LOGIN = "login"
STEP_CERTIFICATE = "certificate"


@dataclass(frozen=True)
class CertRequest:
    """Parameters of a certificate request.

    Parameters
    ----------
    common_name:
        Identity to issue the certificate for.
    alternate_names:
        Subject alternative names, sent comma-joined.
    ttl:
        Requested validity; omitted from the request when zero.
    """

    common_name: str
    alternate_names: list[str] = field(default_factory=list)
    ttl: timedelta = timedelta(0)

    @classmethod
    def from_config(cls, cert_config: CertConfig) -> "CertRequest":
        return cls(
            common_name=cert_config.common_name,
            alternate_names=list(cert_config.alternate_names),
            ttl=cert_config.ttl,
        )

    def to_payload(self) -> dict[str, str]:
        payload = {
            "common_name": self.common_name,
            "alt_names": ",".join(self.alternate_names),
        }
        if self.ttl:
            payload["ttl"] = format_duration(self.ttl)
        return payload


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _error_messages(response: requests.Response) -> list[str]:
    """Best-effort extraction of ``errors`` from a failed response body."""
    try:
        body = response.json()
    except ValueError:
        logger.debug("Could not decode error body (status %s)", response.status_code)
        return []
    if not isinstance(body, dict):
        return []
    errors = body.get("errors")
    if not isinstance(errors, list):
        return []
    return [str(error) for error in errors]


def _decode_envelope(response: requests.Response, step: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise ProtocolError(f"Error unmarshalling Vault {step} response: {exc}", step) from exc
    if not isinstance(body, dict):
        raise ProtocolError(f"Vault {step} response is not a JSON object", step)
    return body


class VaultClient:
    """Client for the login and certificate endpoints of the backend.

    Parameters
    ----------
    settings:
        Backend URL, endpoint paths, credentials and timeout.
    session:
        Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        settings: VaultSettings,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings
        self._timeout = settings.timeout.total_seconds()
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "cert-monitor"})

    def __enter__(self) -> "VaultClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------

    def authenticate(self) -> str:
        """Exchange role/secret credentials for a session token.

        Raises
        ------
        AuthError
            If the backend rejects the login; carries the status code and
            any error messages found in the body.
        ProtocolError
            If a successful response has no token.
        TransportError
            If the backend cannot be reached.
        """
        payload = {
            "role_id": self._settings.role_id,
            "secret_id": self._settings.secret_id,
        }
        response = self._post(STEP_LOGIN, self._settings.login_path, payload)

        if not _is_success(response.status_code):
            raise AuthError(
                f"vault auth status: {response.status_code}",
                STEP_LOGIN,
                response.status_code,
                _error_messages(response),
            )

        envelope = _decode_envelope(response, STEP_LOGIN)
        auth = envelope.get("auth")
        token = auth.get("client_token") if isinstance(auth, dict) else None
        if not isinstance(token, str) or not token:
            raise ProtocolError("Vault login response has no auth.client_token", STEP_LOGIN)
        return token

    def request_certificate(self, token: str, cert_request: CertRequest) -> IssuedBundle:
        """Request a new certificate using a session *token*.

        Raises
        ------
        IssueError
            If the backend rejects the request.
        ProtocolError
            If a successful response cannot be decoded into a bundle.
        TransportError
            If the backend cannot be reached.
        """
        response = self._post(
            STEP_CERTIFICATE,
            self._settings.cert_path,
            cert_request.to_payload(),
            headers={TOKEN_HEADER: token},
        )

        if not _is_success(response.status_code):
            raise IssueError(
                f"vault status: {response.status_code}",
                STEP_CERTIFICATE,
                response.status_code,
                _error_messages(response),
            )

        envelope = _decode_envelope(response, STEP_CERTIFICATE)
        data = envelope.get("data")
        if not isinstance(data, dict):
            raise ProtocolError("Vault certificate response has no data object", STEP_CERTIFICATE)
        if envelope.get("errors"):
            logger.warning(
                "Vault reported errors while issuing %s: %s",
                cert_request.common_name,
                envelope["errors"],
            )
        try:
            return IssuedBundle.from_response(data)
        except TypeError as exc:
            raise ProtocolError(f"Malformed certificate data: {exc}", STEP_CERTIFICATE) from exc

    def fetch_new_certificate(self, cert_request: CertRequest) -> IssuedBundle:
        """Log in, then request a certificate with the fresh token.

        The request is only sent if the login succeeded. Errors carry the
        ``step`` that failed.
        """
        token = self.authenticate()
        return self.request_certificate(token, cert_request)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _post(
        self,
        step: str,
        path: str,
        payload: dict[str, str],
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        url = urljoin(self._settings.base_url, path)
        try:
            return self._session.post(url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"Error calling Vault ({step}): {exc}", step) from exc
