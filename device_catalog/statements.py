"""Device statement and quirk projections."""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from fido2.utils import websafe_decode, websafe_encode

from .enrichment import Device
from .errors import MalformedRecordError
from .reconcile import EnrichedDevice

LOGGER = logging.getLogger("device_catalog.statements")


@dataclass(frozen=True)
class CatalogSku:
    aaguid: uuid.UUID
    display_name: str


@dataclass(frozen=True)
class Authority:
    """An attestation CA and the SKUs it vouches for."""

    ca: bytes
    skus: Tuple[CatalogSku, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ca": websafe_encode(self.ca),
            "skus": [
                {"aaguid": str(sku.aaguid), "display_name": sku.display_name}
                for sku in self.skus
            ],
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "Authority":
        if not isinstance(raw, Mapping):
            raise MalformedRecordError("Authority must be an object.")

        encoded = raw.get("ca")
        raw_skus = raw.get("skus")
        if not isinstance(encoded, str) or not isinstance(raw_skus, list):
            raise MalformedRecordError("Authority requires 'ca' and 'skus'.")

        skus = []
        for raw_sku in raw_skus:
            if not isinstance(raw_sku, Mapping) or not isinstance(raw_sku.get("display_name"), str):
                raise MalformedRecordError("Authority SKU must carry an aaguid and display_name.")
            try:
                aaguid = uuid.UUID(str(raw_sku.get("aaguid")))
            except ValueError as exc:
                raise MalformedRecordError("Authority SKU has an invalid AAGUID.") from exc
            skus.append(CatalogSku(aaguid=aaguid, display_name=raw_sku["display_name"]))

        try:
            ca = websafe_decode(encoded)
        except ValueError as exc:
            raise MalformedRecordError("Authority CA is not valid base64url.") from exc
        return cls(ca=ca, skus=tuple(skus))


def project_authorities(devices: Iterable[EnrichedDevice]) -> List[Authority]:
    """Invert enriched devices into one :class:`Authority` per distinct CA.

    Authorities appear in the order their CA is first seen. A device with no
    CAs cannot be keyed and is left out.
    """

    work_map: Dict[bytes, List[CatalogSku]] = OrderedDict()
    for device in devices:
        if not device.cas:
            LOGGER.debug("Device %s has no attestation CA; omitted from catalog.", device.aaguid)
            continue
        sku = CatalogSku(aaguid=device.aaguid, display_name=device.display_name)
        for ca in device.cas:
            work_map.setdefault(ca, []).append(sku)

    return [Authority(ca=ca, skus=tuple(skus)) for ca, skus in work_map.items()]


def project_quirks(devices: Iterable[Device]) -> Dict[uuid.UUID, Set[str]]:
    """Collect the quirks of every enrichment device by AAGUID."""

    quirks: Dict[uuid.UUID, Set[str]] = {}
    for device in devices:
        if not device.quirks:
            # Devices without quirks get no entry at all.
            continue
        quirks.setdefault(device.aaguid, set()).update(device.quirks)
    return quirks


def serialize_catalog(authorities: Iterable[Authority]) -> List[Dict[str, Any]]:
    return [authority.to_dict() for authority in authorities]


def load_catalog(raw: Any) -> List[Authority]:
    if not isinstance(raw, list):
        raise MalformedRecordError("Device catalog must be a list of authorities.")
    return [Authority.from_dict(entry) for entry in raw]


def serialize_quirks(quirks: Mapping[uuid.UUID, Iterable[str]]) -> Dict[str, List[str]]:
    return {str(aaguid): sorted(quirks[aaguid]) for aaguid in sorted(quirks)}


__all__ = [
    "Authority",
    "CatalogSku",
    "load_catalog",
    "project_authorities",
    "project_quirks",
    "serialize_catalog",
    "serialize_quirks",
]
