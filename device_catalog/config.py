"""Configuration for the device catalog tool."""
from __future__ import annotations

import base64
import os
import re
import uuid
from typing import FrozenSet, Optional


def _env_flag(name: str) -> Optional[bool]:
    """Return ``True`` or ``False`` when the named env var is explicitly set."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return None

    normalised = raw_value.strip().lower()
    if normalised in {"", "0", "false", "off", "no"}:
        return False
    return True


def _parse_aaguid_filter(raw_value: Optional[str]) -> Optional[FrozenSet[uuid.UUID]]:
    """Normalise a comma or newline separated list of AAGUIDs."""

    if raw_value is None:
        return None

    components = re.split(r"[,;\n]+", raw_value)
    aaguids = set()
    for component in components:
        cleaned = component.strip()
        if not cleaned:
            continue
        try:
            aaguids.add(uuid.UUID(cleaned))
        except ValueError:
            continue
    if not aaguids:
        return None
    return frozenset(aaguids)


def _parse_log_level(raw_value: Optional[str]) -> Optional[str]:
    if raw_value is None:
        return None

    normalised = raw_value.strip().upper()
    if normalised in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
        return normalised
    return None


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL = _parse_log_level(os.environ.get("DEVICE_CATALOG_LOG_LEVEL"))

AAGUID_FILTER = _parse_aaguid_filter(os.environ.get("DEVICE_CATALOG_AAGUID_FILTER"))

_verify_mds_flag = _env_flag("DEVICE_CATALOG_VERIFY_MDS")
VERIFY_MDS_BLOB = True if _verify_mds_flag is None else _verify_mds_flag

# GlobalSign Root CA - R3, the trust anchor of the FIDO MDS3 BLOB signing chain.
FIDO_METADATA_TRUST_ROOT_B64 = (
    "MIIDXzCCAkegAwIBAgILBAAAAAABIVhTCKIwDQYJKoZIhvcNAQELBQAwTDEgMB4G"
    "A1UECxMXR2xvYmFsU2lnbiBSb290IENBIC0gUjMxEzARBgNVBAoTCkdsb2JhbFNp"
    "Z24xEzARBgNVBAMTCkdsb2JhbFNpZ24wHhcNMDkwMzE4MTAwMDAwWhcNMjkwMzE4"
    "MTAwMDAwWjBMMSAwHgYDVQQLExdHbG9iYWxTaWduIFJvb3QgQ0EgLSBSMzETMBEG"
    "A1UEChMKR2xvYmFsU2lnbjETMBEGA1UEAxMKR2xvYmFsU2lnbjCCASIwDQYJKoZI"
    "hvcNAQEBBQADggEPADCCAQoCggEBAMwldpB5BngiFvXAg7aEyiie/QV2EcWtiHL8"
    "RgJDx7KKnQRfJMsuS+FggkbhUqsMgUdwbN1k0ev1LKMPgj0MK66X17YUhhB5uzsT"
    "gHeMCOFJ0mpiLx9e+pZo34knlTifBtc+ycsmWQ1z3rDI6SYOgxXG71uL0gRgykmm"
    "KPZpO/bLyCiR5Z2KYVc3rHQU3HTgOu5yLy6c+9C7v/U9AOEGM+iCK65TpjoWc4zd"
    "QQ4gOsC0p6Hpsk+QLjJg6VfLuQSSaGjlOCZgdbKfd/+RFO+uIEn8rUAVSNECMWEZ"
    "XriX7613t2Saer9fwRPvm2L7DWzgVGkWqQPabumDk3F2xmmFghcCAwEAAaNCMEAw"
    "DgYDVR0PAQH/BAQDAgEGMA8GA1UdEwEB/wQFMAMBAf8wHQYDVR0OBBYEFI/wS3+o"
    "LkUkrk1Q+mOai97i3Ru8MA0GCSqGSIb3DQEBCwUAA4IBAQBLQNvAUKr+yAzv95ZU"
    "RUm7lgAJQayzE4aGKAczymvmdLm6AC2upArT9fHxD4q/c2dKg8dEe3jgr25sbwMp"
    "jjM5RcOO5LlXbKr8EpbsU8Yt5CRsuZRj+9xTaGdWPoO4zzUhw8lo/s7awlOqzJCK"
    "6fBdRoyV3XpYKBovHd7NADdBj+1EbddTKJd+82cEHhXXipa0095MJ6RMG3NzdvQX"
    "mcIfeg7jLQitChws/zyrVQ4PkX4268NXSb7hLi18YIvDQVETI53O9zJrlAGomecs"
    "Mx86OyXShkDOOyyGeMlhLxS67ttVb9+E7gUJTb0o2HLO02JQZR7rkpeDMdmztcpH"
    "WD9f"
)
FIDO_METADATA_TRUST_ROOT_CERT = base64.b64decode(FIDO_METADATA_TRUST_ROOT_B64)

__all__ = [
    "AAGUID_FILTER",
    "FIDO_METADATA_TRUST_ROOT_B64",
    "FIDO_METADATA_TRUST_ROOT_CERT",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "VERIFY_MDS_BLOB",
]
