"""Attestation CA registry keyed by certificate digest.

Each :class:`AttestationCa` wraps the root certificate of an attestation chain
together with the set of AAGUIDs it may vouch for. An :class:`AttestationCaList`
deduplicates CAs by the SHA-256 digest of their DER encoding.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from fido2.utils import websafe_decode, websafe_encode

from .errors import DigestError, MalformedRecordError

LOGGER = logging.getLogger("device_catalog.attestation_ca")

_PEM_MARKER = b"-----BEGIN"

CertificateInput = Union[x509.Certificate, bytes, bytearray, memoryview]


def _load_certificate(data: CertificateInput) -> x509.Certificate:
    if isinstance(data, x509.Certificate):
        return data

    raw = bytes(data)
    try:
        if raw.lstrip().startswith(_PEM_MARKER):
            return x509.load_pem_x509_certificate(raw)
        return x509.load_der_x509_certificate(raw)
    except ValueError as exc:
        raise DigestError("Unable to parse attestation CA certificate.") from exc


def certificate_key_id(certificate: x509.Certificate) -> bytes:
    """Return the SHA-256 digest identifying *certificate*."""

    try:
        return certificate.fingerprint(hashes.SHA256())
    except (AttributeError, TypeError, ValueError) as exc:
        raise DigestError("Unable to compute attestation CA digest.") from exc


def _parse_aaguid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ValueError("AAGUID must be a string.")
    return uuid.UUID(value.strip())


@dataclass
class AttestationCa:
    """An attestation root CA and the AAGUIDs it is trusted for.

    An empty ``aaguids`` set means every AAGUID signed by this CA is trusted.
    """

    ca: x509.Certificate
    aaguids: Set[uuid.UUID] = field(default_factory=set)

    @classmethod
    def from_der(cls, data: bytes) -> "AttestationCa":
        try:
            certificate = x509.load_der_x509_certificate(bytes(data))
        except ValueError as exc:
            raise DigestError("Invalid DER attestation CA certificate.") from exc
        return cls(ca=certificate)

    @classmethod
    def from_pem(cls, data: bytes) -> "AttestationCa":
        try:
            certificate = x509.load_pem_x509_certificate(bytes(data))
        except ValueError as exc:
            raise DigestError("Invalid PEM attestation CA certificate.") from exc
        return cls(ca=certificate)

    @classmethod
    def load(cls, data: CertificateInput) -> "AttestationCa":
        """Build an unrestricted CA from a certificate in DER or PEM form."""

        return cls(ca=_load_certificate(data))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttestationCa":
        if not isinstance(data, Mapping):
            raise MalformedRecordError("Attestation CA record must be an object.")

        encoded = data.get("ca")
        if not isinstance(encoded, str):
            raise MalformedRecordError("Attestation CA record is missing its certificate.")
        try:
            der = websafe_decode(encoded)
        except ValueError as exc:
            raise MalformedRecordError("Attestation CA certificate is not valid base64url.") from exc

        raw_aaguids = data.get("aaguids", [])
        if not isinstance(raw_aaguids, list):
            raise MalformedRecordError("Attestation CA aaguids must be a list.")
        try:
            aaguids = {_parse_aaguid(value) for value in raw_aaguids}
        except ValueError as exc:
            raise MalformedRecordError("Attestation CA record lists an invalid AAGUID.") from exc

        att_ca = cls.from_der(der)
        att_ca.aaguids = aaguids
        return att_ca

    def to_der(self) -> bytes:
        return self.ca.public_bytes(serialization.Encoding.DER)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ca": websafe_encode(self.to_der()),
            "aaguids": [str(aaguid) for aaguid in sorted(self.aaguids)],
        }

    def key_id(self) -> bytes:
        """Retrieve the key identifier (certificate digest) for this CA."""

        return certificate_key_id(self.ca)

    def set_aaguids(self, aaguids: Iterable[uuid.UUID]) -> None:
        """Replace the allowed AAGUIDs. An empty iterable allows every AAGUID."""

        self.aaguids = set(aaguids)

    def insert_aaguid(self, aaguid: uuid.UUID) -> None:
        self.aaguids.add(aaguid)

    def allows(self, aaguid: uuid.UUID) -> bool:
        return not self.aaguids or aaguid in self.aaguids


class AttestationCaList:
    """The set of attestation CAs trusted for an operation."""

    def __init__(self, cas: Optional[Mapping[bytes, AttestationCa]] = None) -> None:
        self.cas: Dict[bytes, AttestationCa] = dict(cas or {})

    @classmethod
    def from_ca(cls, att_ca: AttestationCa) -> "AttestationCaList":
        registry = cls()
        registry.register(att_ca)
        return registry

    @classmethod
    def from_pem(cls, data: bytes) -> "AttestationCaList":
        return cls.from_ca(AttestationCa.from_pem(data))

    @classmethod
    def from_pairs(
        cls, pairs: Iterable[Tuple[CertificateInput, uuid.UUID]]
    ) -> "AttestationCaList":
        """Build a registry from ``(certificate, aaguid)`` pairs, merging per digest."""

        registry = cls()
        registry.merge(pairs)
        return registry

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttestationCaList":
        if not isinstance(data, Mapping):
            raise MalformedRecordError("Attestation CA list must be an object.")

        registry = cls()
        for encoded_kid, record in data.items():
            att_ca = AttestationCa.from_dict(record)
            kid = att_ca.key_id()
            if websafe_encode(kid) != encoded_kid:
                LOGGER.warning(
                    "Attestation CA stored under %s has digest %s; re-keying.",
                    encoded_kid,
                    websafe_encode(kid),
                )
            registry.cas[kid] = att_ca
        return registry

    def to_dict(self) -> Dict[str, Any]:
        return {
            websafe_encode(kid): self.cas[kid].to_dict() for kid in sorted(self.cas)
        }

    def is_empty(self) -> bool:
        return not self.cas

    def __len__(self) -> int:
        return len(self.cas)

    def __contains__(self, key_id: object) -> bool:
        return key_id in self.cas

    def __iter__(self) -> Iterator[AttestationCa]:
        for kid in sorted(self.cas):
            yield self.cas[kid]

    def get(self, key_id: bytes) -> Optional[AttestationCa]:
        return self.cas.get(key_id)

    def key_ids(self) -> List[bytes]:
        return sorted(self.cas)

    def register(self, att_ca: AttestationCa) -> Optional[AttestationCa]:
        """Insert *att_ca*, returning the entry it replaced if any."""

        kid = att_ca.key_id()
        previous = self.cas.get(kid)
        self.cas[kid] = att_ca
        return previous

    def merge(self, pairs: Iterable[Tuple[CertificateInput, uuid.UUID]]) -> None:
        """Add ``(certificate, aaguid)`` pairs, extending existing allow-lists."""

        resolved = []
        for certificate, aaguid in pairs:
            parsed = _load_certificate(certificate)
            resolved.append((certificate_key_id(parsed), parsed, aaguid))

        for kid, certificate, aaguid in resolved:
            existing = self.cas.get(kid)
            if existing is None:
                self.cas[kid] = AttestationCa(ca=certificate, aaguids={aaguid})
            else:
                existing.insert_aaguid(aaguid)


__all__ = [
    "AttestationCa",
    "AttestationCaList",
    "certificate_key_id",
]
