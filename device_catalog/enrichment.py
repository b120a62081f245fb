"""Locally curated enrichment data for FIDO MDS devices.

The enrichment tree is laid out as::

    <root>/hw/<anything>/device.json   one Device record per folder
    <root>/mfr/<name>.json             one Manufacturer record per file
"""
from __future__ import annotations

import enum
import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from fido2.utils import websafe_decode

from .errors import InvalidInputLocationError, MalformedRecordError

LOGGER = logging.getLogger("device_catalog.enrichment")


class MdsLink(str, enum.Enum):
    """How an enrichment record relates to the FIDO MDS entry with its AAGUID."""

    # The record annotates the MDS device.
    EXTEND = "extend"
    # The record is a distinct device sharing the MDS device's attestation,
    # such as a rebadged Feitian ePass FIDO2 authenticator.
    CLONE = "clone"


def _require_str(raw: Mapping[str, Any], key: str, source: Optional[str]) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise MalformedRecordError(f"Field {key!r} must be a string", source=source)
    return value


def _optional_str_list(raw: Mapping[str, Any], key: str, source: Optional[str]) -> List[str]:
    value = raw.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise MalformedRecordError(f"Field {key!r} must be a list of strings", source=source)
    return list(value)


@dataclass(frozen=True)
class Sku:
    attestation_cas: Tuple[bytes, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any, *, source: Optional[str] = None) -> "Sku":
        if not isinstance(raw, Mapping):
            raise MalformedRecordError("SKU must be an object", source=source)

        encoded = raw.get("attestation_cas")
        if not isinstance(encoded, list):
            raise MalformedRecordError("Field 'attestation_cas' must be a list", source=source)

        cas = []
        for value in encoded:
            if not isinstance(value, str):
                raise MalformedRecordError("Attestation CAs must be base64url strings", source=source)
            try:
                cas.append(websafe_decode(value))
            except ValueError as exc:
                raise MalformedRecordError("Attestation CA is not valid base64url", source=source) from exc
        return cls(attestation_cas=tuple(cas))


@dataclass(frozen=True)
class Device:
    aaguid: uuid.UUID
    display_name: str
    mds_link: MdsLink = MdsLink.EXTEND
    quirks: FrozenSet[str] = frozenset()
    skus: Tuple[Sku, ...] = ()
    images: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any, *, source: Optional[str] = None) -> "Device":
        if not isinstance(raw, Mapping):
            raise MalformedRecordError("Device record must be an object", source=source)

        try:
            aaguid = uuid.UUID(_require_str(raw, "aaguid", source))
        except ValueError as exc:
            raise MalformedRecordError("Field 'aaguid' is not a valid UUID", source=source) from exc

        try:
            mds_link = MdsLink(raw.get("mds_link", MdsLink.EXTEND.value))
        except ValueError as exc:
            raise MalformedRecordError(
                f"Field 'mds_link' must be one of {[link.value for link in MdsLink]}",
                source=source,
            ) from exc

        raw_skus = raw.get("skus", [])
        if not isinstance(raw_skus, list):
            raise MalformedRecordError("Field 'skus' must be a list", source=source)

        return cls(
            aaguid=aaguid,
            display_name=_require_str(raw, "display_name", source),
            mds_link=mds_link,
            quirks=frozenset(_optional_str_list(raw, "quirks", source)),
            skus=tuple(Sku.from_dict(sku, source=source) for sku in raw_skus),
            images=tuple(_optional_str_list(raw, "images", source)),
        )

    def attestation_cas(self) -> List[bytes]:
        """Every CA listed by this device's SKUs, in SKU order."""

        return [ca for sku in self.skus for ca in sku.attestation_cas]


@dataclass(frozen=True)
class Manufacturer:
    name: str
    fido_names: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any, *, source: Optional[str] = None) -> "Manufacturer":
        if not isinstance(raw, Mapping):
            raise MalformedRecordError("Manufacturer record must be an object", source=source)
        if "fido_names" not in raw:
            raise MalformedRecordError("Field 'fido_names' is required", source=source)
        return cls(
            name=_require_str(raw, "name", source),
            fido_names=tuple(_optional_str_list(raw, "fido_names", source)),
        )


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as record_file:
            return json.load(record_file)
    except OSError as exc:
        raise MalformedRecordError(f"Unable to read record: {exc}", source=str(path)) from exc
    except ValueError as exc:
        raise MalformedRecordError(f"Invalid JSON content: {exc}", source=str(path)) from exc


def _require_directory(path: Path, description: str) -> None:
    if not path.is_dir():
        LOGGER.error("%s %s is not a directory.", description, path)
        raise InvalidInputLocationError(f"{description} {path} is not a directory.", path=str(path))


@dataclass
class Enrichment:
    """In-memory enrichment dataset."""

    devices: List[Device] = field(default_factory=list)
    manufacturers: List[Manufacturer] = field(default_factory=list)

    @classmethod
    def load(cls, root: Union[str, Path]) -> "Enrichment":
        """Load every device and manufacturer record beneath *root*.

        Any invalid record aborts the whole load.
        """

        root_path = Path(root)
        _require_directory(root_path, "Enrichment root")
        hw_path = root_path / "hw"
        _require_directory(hw_path, "Hardware folder")
        mfr_path = root_path / "mfr"
        _require_directory(mfr_path, "Manufacturer folder")

        devices: List[Device] = []
        for hw_entry in sorted(hw_path.iterdir()):
            device_path = hw_entry / "device.json"
            if not device_path.is_file():
                LOGGER.debug("Ignoring %s without a device.json.", hw_entry)
                continue
            devices.append(Device.from_dict(_read_json(device_path), source=str(device_path)))

        manufacturers: List[Manufacturer] = []
        for mfr_entry in sorted(mfr_path.iterdir()):
            if mfr_entry.suffix != ".json" or not mfr_entry.is_file():
                LOGGER.debug("Ignoring non-record entry %s.", mfr_entry)
                continue
            manufacturers.append(
                Manufacturer.from_dict(_read_json(mfr_entry), source=str(mfr_entry))
            )

        LOGGER.info(
            "Loaded %d devices and %d manufacturers from %s.",
            len(devices),
            len(manufacturers),
            root_path,
        )
        return cls(devices=devices, manufacturers=manufacturers)


def index_enrichment(devices: Sequence[Device]) -> Dict[uuid.UUID, List[Device]]:
    """Group enrichment devices by AAGUID, keeping load order within a group."""

    index: Dict[uuid.UUID, List[Device]] = OrderedDict()
    for device in devices:
        index.setdefault(device.aaguid, []).append(device)
    return index


__all__ = [
    "Device",
    "Enrichment",
    "Manufacturer",
    "MdsLink",
    "Sku",
    "index_enrichment",
]
