"""Loading of the FIDO Metadata Service feed."""
from __future__ import annotations

import base64
import json
import logging
import os
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from fido2.mds3 import MetadataBlobPayloadEntry, parse_blob

from . import config
from .errors import InvalidInputLocationError, MalformedRecordError

LOGGER = logging.getLogger("device_catalog.mds")

_METADATA_STATEMENT_REQUIRED_DEFAULTS: Mapping[str, Any] = {
    "description": "",
    "authenticatorVersion": 0,
    "schema": 3,
    "upv": [],
    "attestationTypes": [],
    "userVerificationDetails": [],
    "keyProtection": [],
    "matcherProtection": [],
    "attachmentHint": [],
    "tcDisplay": [],
    "attestationRootCertificates": [],
}


@dataclass(frozen=True)
class FeedDevice:
    """A FIDO2 authenticator as described by the metadata feed."""

    aaguid: uuid.UUID
    description: str
    attestation_root_certificates: Tuple[bytes, ...] = ()


def _clone_json_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return None


def _normalise_metadata_statement(raw: Mapping[str, Any]) -> Dict[str, Any]:
    metadata_statement: Dict[str, Any] = {}
    for key, value in raw.items():
        cloned = _clone_json_value(value)
        if cloned is not None:
            metadata_statement[key] = cloned

    description = metadata_statement.get("description")
    if not isinstance(description, str):
        metadata_statement["description"] = _METADATA_STATEMENT_REQUIRED_DEFAULTS["description"]

    for key in ("authenticatorVersion", "schema"):
        if not isinstance(metadata_statement.get(key), int):
            metadata_statement[key] = _METADATA_STATEMENT_REQUIRED_DEFAULTS[key]

    for key in (
        "upv",
        "attestationTypes",
        "userVerificationDetails",
        "keyProtection",
        "matcherProtection",
        "attachmentHint",
        "tcDisplay",
        "attestationRootCertificates",
    ):
        if not isinstance(metadata_statement.get(key), list):
            metadata_statement[key] = list(_METADATA_STATEMENT_REQUIRED_DEFAULTS[key])

    return metadata_statement


def _normalise_entry(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill in the fields the MDS3 schema requires but hand-written entries omit."""

    payload: Dict[str, Any] = {}

    reports = raw.get("statusReports")
    payload["statusReports"] = []
    if isinstance(reports, list):
        for report in reports:
            cloned = _clone_json_value(report)
            if isinstance(cloned, dict):
                payload["statusReports"].append(cloned)

    time_of_last_status_change = raw.get("timeOfLastStatusChange")
    if isinstance(time_of_last_status_change, str) and time_of_last_status_change.strip():
        payload["timeOfLastStatusChange"] = time_of_last_status_change.strip()
    else:
        payload["timeOfLastStatusChange"] = datetime.now(timezone.utc).date().isoformat()

    for key in ("aaid", "aaguid"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            payload[key] = value.strip()

    identifiers = raw.get("attestationCertificateKeyIdentifiers")
    if isinstance(identifiers, list) and identifiers:
        payload["attestationCertificateKeyIdentifiers"] = [
            identifier for identifier in identifiers if isinstance(identifier, str)
        ]

    statement = raw.get("metadataStatement")
    if isinstance(statement, Mapping):
        payload["metadataStatement"] = _normalise_metadata_statement(statement)

    return payload


def expand_metadata_entry_payloads(raw: Any) -> List[Mapping[str, Any]]:
    """Expand a JSON document into individual metadata entries.

    The document may mirror the BLOB payload (an ``entries`` list) or be a
    single entry object.
    """

    if not isinstance(raw, Mapping):
        raise MalformedRecordError("Metadata JSON must be an object.")

    entries_value = raw.get("entries")
    if entries_value is None:
        return [raw]
    if not isinstance(entries_value, list):
        raise MalformedRecordError("Metadata JSON entries must be a list.")

    expanded: List[Mapping[str, Any]] = []
    for index, entry in enumerate(entries_value):
        if not isinstance(entry, Mapping):
            raise MalformedRecordError(f"Entry {index + 1} is not a JSON object.")
        expanded.append(entry)
    return expanded


def parse_metadata_entries(raw: Any) -> List[MetadataBlobPayloadEntry]:
    entries: List[MetadataBlobPayloadEntry] = []
    for index, payload in enumerate(expand_metadata_entry_payloads(raw)):
        try:
            entries.append(MetadataBlobPayloadEntry.from_dict(_normalise_entry(payload)))
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedRecordError(
                f"Entry {index + 1} is not a valid metadata entry: {exc}"
            ) from exc
    return entries


def _decode_jws_payload(blob: bytes) -> Dict[str, Any]:
    try:
        _header_segment, payload_segment, _signature_segment = blob.strip().split(b".", 2)
    except ValueError as exc:
        raise MalformedRecordError("Invalid metadata BLOB format.") from exc

    if not payload_segment:
        raise MalformedRecordError("Metadata BLOB payload segment missing.")

    padding = b"=" * (-len(payload_segment) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload_segment + padding)
        return json.loads(decoded.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedRecordError("Metadata BLOB payload does not contain valid JSON.") from exc


def _entries_from_blob(blob: bytes, *, verify: bool) -> List[MetadataBlobPayloadEntry]:
    if not verify:
        LOGGER.warning("Reading FIDO MDS BLOB without verifying its signature.")
        return parse_metadata_entries(_decode_jws_payload(blob))

    try:
        payload = parse_blob(blob.strip(), config.FIDO_METADATA_TRUST_ROOT_CERT)
    except Exception as exc:  # fido2 raises several unrelated types here
        raise MalformedRecordError("Failed to verify metadata BLOB signature.") from exc
    return list(payload.entries)


def feed_devices_from_entries(entries: Iterable[MetadataBlobPayloadEntry]) -> List[FeedDevice]:
    """Project FIDO2 metadata entries into :class:`FeedDevice` records."""

    devices: List[FeedDevice] = []
    skipped = 0
    for entry in entries:
        statement = entry.metadata_statement
        if entry.aaguid is None or statement is None:
            skipped += 1
            continue

        devices.append(
            FeedDevice(
                aaguid=uuid.UUID(bytes=bytes(entry.aaguid)),
                description=statement.description,
                attestation_root_certificates=tuple(
                    bytes(cert) for cert in statement.attestation_root_certificates or ()
                ),
            )
        )

    if skipped:
        LOGGER.debug("Skipped %d metadata entries without a FIDO2 AAGUID.", skipped)
    return devices


def load_feed(path: str, *, verify: Optional[bool] = None) -> List[FeedDevice]:
    """Read a FIDO MDS feed from *path*.

    JSON files are parsed directly. Anything else is treated as a signed
    MDS3 BLOB, verified against the FIDO trust root unless *verify* (or
    ``DEVICE_CATALOG_VERIFY_MDS``) disables it.
    """

    if not os.path.isfile(path):
        raise InvalidInputLocationError(f"FIDO MDS path {path} is not a file.", path=str(path))

    with open(path, "rb") as feed_file:
        content = feed_file.read()

    if content.lstrip().startswith(b"{"):
        try:
            raw = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedRecordError("FIDO MDS JSON could not be decoded.", source=str(path)) from exc
        entries = parse_metadata_entries(raw)
    else:
        if verify is None:
            verify = config.VERIFY_MDS_BLOB
        entries = _entries_from_blob(content, verify=verify)

    devices = feed_devices_from_entries(entries)
    LOGGER.info("Loaded %d FIDO2 devices from %s.", len(devices), path)
    return devices


def index_feed(devices: Iterable[FeedDevice]) -> Dict[uuid.UUID, List[FeedDevice]]:
    """Group feed devices by AAGUID, keeping feed order within a group."""

    index: Dict[uuid.UUID, List[FeedDevice]] = OrderedDict()
    for device in devices:
        index.setdefault(device.aaguid, []).append(device)
    return index


__all__ = [
    "FeedDevice",
    "expand_metadata_entry_payloads",
    "feed_devices_from_entries",
    "index_feed",
    "load_feed",
    "parse_metadata_entries",
]
