"""Reconciliation of FIDO MDS devices with local enrichment data.

AAGUIDs are the join key between both sources, but not a one to one map:
several enrichment records may share an AAGUID, and a ``clone`` record names
a distinct device that borrows another device's attestation CAs. The result
is later inverted into a CA keyed catalog by
:func:`device_catalog.statements.project_authorities`.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .enrichment import Device, MdsLink
from .errors import DuplicateFeedAaguidError
from .mds import FeedDevice

LOGGER = logging.getLogger("device_catalog.reconcile")

AaguidFilter = Callable[[uuid.UUID], bool]


@dataclass(frozen=True)
class EnrichedDevice:
    aaguid: uuid.UUID
    display_name: str
    quirks: FrozenSet[str] = frozenset()
    cas: Tuple[bytes, ...] = ()


def allow_aaguids(aaguids: Iterable[uuid.UUID]) -> AaguidFilter:
    """Return a filter accepting only the given AAGUIDs."""

    allowed = frozenset(aaguids)
    return lambda aaguid: aaguid in allowed


def _aaguid_union(
    feed_index: Mapping[uuid.UUID, Sequence[FeedDevice]],
    enrichment_index: Mapping[uuid.UUID, Sequence[Device]],
    aaguid_filter: Optional[AaguidFilter],
) -> List[uuid.UUID]:
    aaguids: Set[uuid.UUID] = set(feed_index) | set(enrichment_index)
    if aaguid_filter is not None:
        aaguids = {aaguid for aaguid in aaguids if aaguid_filter(aaguid)}
    return sorted(aaguids)


def _unique_feed_device(aaguid: uuid.UUID, fdevs: Sequence[FeedDevice]) -> FeedDevice:
    if len(fdevs) > 1:
        LOGGER.error("FIDO MDS claims AAGUIDs are unique, but %s has a duplication.", aaguid)
        raise DuplicateFeedAaguidError(aaguid, len(fdevs))
    return fdevs[0]


def _link_device(fdev: FeedDevice, edev: Device) -> EnrichedDevice:
    if edev.mds_link is MdsLink.CLONE:
        # A clone is its own device; only the trust anchors come from MDS.
        return EnrichedDevice(
            aaguid=edev.aaguid,
            display_name=edev.display_name,
            quirks=edev.quirks,
            cas=fdev.attestation_root_certificates,
        )
    return EnrichedDevice(
        aaguid=fdev.aaguid,
        display_name=fdev.description,
        quirks=edev.quirks,
        cas=fdev.attestation_root_certificates,
    )


def reconcile(
    feed_index: Mapping[uuid.UUID, Sequence[FeedDevice]],
    enrichment_index: Mapping[uuid.UUID, Sequence[Device]],
    *,
    aaguid_filter: Optional[AaguidFilter] = None,
) -> List[EnrichedDevice]:
    """Merge both AAGUID indexes into a flat list of enriched devices.

    Devices are emitted in ascending AAGUID order, then in enrichment order.
    Raises :class:`DuplicateFeedAaguidError` if the feed lists an AAGUID more
    than once; nothing is returned in that case.
    """

    devices: List[EnrichedDevice] = []

    for aaguid in _aaguid_union(feed_index, enrichment_index, aaguid_filter):
        fdevs = feed_index.get(aaguid) or None
        edevs = enrichment_index.get(aaguid) or None
        LOGGER.debug(
            "Working on %s - fido %s enrich %s", aaguid, fdevs is not None, edevs is not None
        )

        if fdevs is not None and edevs is not None:
            fdev = _unique_feed_device(aaguid, fdevs)
            devices.extend(_link_device(fdev, edev) for edev in edevs)
        elif fdevs is not None:
            fdev = _unique_feed_device(aaguid, fdevs)
            devices.append(
                EnrichedDevice(
                    aaguid=fdev.aaguid,
                    display_name=fdev.description,
                    cas=fdev.attestation_root_certificates,
                )
            )
        elif edevs is not None:
            devices.extend(
                EnrichedDevice(
                    aaguid=edev.aaguid,
                    display_name=edev.display_name,
                    quirks=edev.quirks,
                    cas=tuple(edev.attestation_cas()),
                )
                for edev in edevs
            )
        else:
            LOGGER.warning("AAGUID %s is unknown to both FIDO MDS and enrichment data.", aaguid)

    LOGGER.info("Reconciled %d enriched devices.", len(devices))
    return devices


__all__ = [
    "AaguidFilter",
    "EnrichedDevice",
    "allow_aaguids",
    "reconcile",
]
