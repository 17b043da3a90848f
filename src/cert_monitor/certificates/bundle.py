"""Issued certificate material and output bundle assembly."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from cert_monitor.errors import OutputSpecError


class OutputItem(str, Enum):
    """Content items that may be selected for an output bundle."""

    CERTIFICATE = "certificate"
    PRIVATE_KEY = "privateKey"
    ISSUING_CA = "issuingCa"
    CHAIN = "chain"


@dataclass(frozen=True)
class IssuedBundle:
    """Certificate material returned by the issuance backend.

    The fields are PEM text and are stored as received; nothing checks
    that they parse until the certificate is next read back from the cache.

    Parameters
    ----------
    certificate:
        Leaf certificate PEM.
    chain:
        Chain PEM, one or more concatenated entries.
    issuing_ca:
        Issuing CA certificate PEM.
    private_key:
        Private key PEM.
    """

    certificate: str
    chain: str
    issuing_ca: str
    private_key: str

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "IssuedBundle":
        """Build a bundle from the ``data`` object of a backend response.

        ``chain`` may be a single string or a list of PEM entries; a list is
        joined with newlines.

        Raises
        ------
        TypeError
            If a field has an unexpected type.
        """
        chain = data.get("chain") or ""
        if isinstance(chain, list):
            chain = "\n".join(str(entry) for entry in chain)

        fields = {
            "certificate": data.get("certificate") or "",
            "chain": chain,
            "issuing_ca": data.get("issuing_ca") or "",
            "private_key": data.get("private_key") or "",
        }
        for name, value in fields.items():
            if not isinstance(value, str):
                raise TypeError(f"field {name!r} must be a string, got {type(value).__name__}")
        return cls(**fields)

    def item(self, item: OutputItem) -> str:
        """Return the PEM text selected by *item*."""
        return {
            OutputItem.CERTIFICATE: self.certificate,
            OutputItem.PRIVATE_KEY: self.private_key,
            OutputItem.ISSUING_CA: self.issuing_ca,
            OutputItem.CHAIN: self.chain,
        }[item]


def parse_items(names: Iterable[str]) -> list[OutputItem]:
    """Convert configured item names to :class:`OutputItem` values.

    Raises
    ------
    OutputSpecError
        On the first unrecognised name.
    """
    items: list[OutputItem] = []
    for name in names:
        try:
            items.append(OutputItem(name))
        except ValueError as exc:
            valid = ", ".join(item.value for item in OutputItem)
            raise OutputSpecError(
                f"config output.items value {name!r} is invalid. Valid values are: {valid}"
            ) from exc
    return items


def render_bundle(names: Iterable[str], bundle: IssuedBundle) -> str:
    """Concatenate the selected items of *bundle* in configured order.

    Each non-empty item is followed by a newline; empty items are skipped.
    All names are validated before any content is produced.
    """
    items = parse_items(names)
    content = ""
    for item in items:
        text = bundle.item(item)
        if text:
            content += text + "\n"
    return content
