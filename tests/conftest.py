import datetime
import json
import pathlib
import sys
import uuid
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def _self_signed_certificate(common_name: str) -> x509.Certificate:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    not_before = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


@pytest.fixture
def make_certificate() -> Callable[[str], x509.Certificate]:
    """Factory for throwaway self-signed attestation roots."""

    return _self_signed_certificate


@pytest.fixture
def write_enrichment(tmp_path):
    """Write an enrichment tree and return its root.

    ``devices`` maps a hw folder name to its device.json payload and
    ``manufacturers`` maps a file name to its payload.
    """

    def _write(devices=None, manufacturers=None) -> pathlib.Path:
        root = tmp_path / "enrichment"
        (root / "hw").mkdir(parents=True)
        (root / "mfr").mkdir()
        for folder, payload in (devices or {}).items():
            device_dir = root / "hw" / folder
            device_dir.mkdir()
            (device_dir / "device.json").write_text(json.dumps(payload))
        for filename, payload in (manufacturers or {}).items():
            (root / "mfr" / filename).write_text(json.dumps(payload))
        return root

    return _write


@pytest.fixture
def aaguids():
    """Stable, ascending AAGUIDs for ordering assertions."""

    return [uuid.UUID(f"{index:08x}-0000-4000-8000-000000000000") for index in range(1, 6)]
