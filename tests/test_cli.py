"""End to end runs of the ``device-catalog`` command."""

import base64
import json
import uuid

import pytest
from cryptography.hazmat.primitives import serialization
from fido2.utils import websafe_encode

from device_catalog import cli, config
from device_catalog.attestation_ca import AttestationCaList

FEED_ONLY = "54d9fee8-e621-4291-8b18-7157b99c5bec"
EXTENDED = "833b721a-ff5f-4d00-bb2e-bdda3ec01e29"
LOCAL_ONLY = "c39efba6-fcf4-4c3e-828b-fc4a6115a0ff"


def _der(certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


def _feed_entry(aaguid, description, roots):
    return {
        "aaguid": aaguid,
        "metadataStatement": {
            "description": description,
            "attestationRootCertificates": [base64.b64encode(root).decode("ascii") for root in roots],
        },
    }


@pytest.fixture
def sources(tmp_path, write_enrichment, make_certificate):
    mds_root = _der(make_certificate("MDS Root"))
    local_root = _der(make_certificate("Local Root"))

    feed_path = tmp_path / "mds.json"
    feed_path.write_text(
        json.dumps(
            {
                "entries": [
                    _feed_entry(FEED_ONLY, "Token A", [mds_root]),
                    _feed_entry(EXTENDED, "Dongle", [mds_root]),
                ]
            }
        )
    )
    enrichment_path = write_enrichment(
        devices={
            "dongle": {"aaguid": EXTENDED, "display_name": "Dongle", "quirks": ["no-pin"]},
            "local": {
                "aaguid": LOCAL_ONLY,
                "display_name": "Local Key",
                "skus": [{"attestation_cas": [websafe_encode(local_root)]}],
            },
        }
    )
    return {
        "feed": feed_path,
        "enrichment": enrichment_path,
        "mds_root": mds_root,
        "local_root": local_root,
    }


def test_generate_ds_writes_catalog(tmp_path, sources):
    output = tmp_path / "out" / "catalog.json"

    exit_code = cli.main(
        ["generate-ds", str(sources["feed"]), str(sources["enrichment"]), str(output)]
    )

    assert exit_code == cli.EXIT_OK
    catalog = json.loads(output.read_text())
    assert catalog == [
        {
            "ca": websafe_encode(sources["mds_root"]),
            "skus": [
                {"aaguid": FEED_ONLY, "display_name": "Token A"},
                {"aaguid": EXTENDED, "display_name": "Dongle"},
            ],
        },
        {
            "ca": websafe_encode(sources["local_root"]),
            "skus": [{"aaguid": LOCAL_ONLY, "display_name": "Local Key"}],
        },
    ]


def test_generate_ds_honours_aaguid_option(tmp_path, sources):
    output = tmp_path / "catalog.json"

    exit_code = cli.main(
        [
            "generate-ds",
            "--aaguid",
            LOCAL_ONLY,
            str(sources["feed"]),
            str(sources["enrichment"]),
            str(output),
        ]
    )

    assert exit_code == cli.EXIT_OK
    catalog = json.loads(output.read_text())
    assert [sku["aaguid"] for authority in catalog for sku in authority["skus"]] == [LOCAL_ONLY]


def test_generate_ds_uses_configured_filter(tmp_path, monkeypatch, sources):
    monkeypatch.setattr(config, "AAGUID_FILTER", frozenset({uuid.UUID(FEED_ONLY)}))
    output = tmp_path / "catalog.json"

    assert cli.main(["generate-ds", str(sources["feed"]), str(sources["enrichment"]), str(output)]) == 0

    catalog = json.loads(output.read_text())
    assert [sku["aaguid"] for authority in catalog for sku in authority["skus"]] == [FEED_ONLY]


def test_duplicate_feed_aaguid_writes_nothing(tmp_path, sources):
    feed = json.loads(sources["feed"].read_text())
    feed["entries"].append(_feed_entry(FEED_ONLY, "Token A again", [sources["mds_root"]]))
    sources["feed"].write_text(json.dumps(feed))
    output = tmp_path / "catalog.json"

    exit_code = cli.main(
        ["generate-ds", str(sources["feed"]), str(sources["enrichment"]), str(output)]
    )

    assert exit_code == cli.EXIT_FAILURE
    assert not output.exists()


def test_generate_ds_fails_on_missing_enrichment(tmp_path, sources):
    output = tmp_path / "catalog.json"

    exit_code = cli.main(["generate-ds", str(sources["feed"]), str(tmp_path / "nope"), str(output)])

    assert exit_code == cli.EXIT_FAILURE
    assert not output.exists()


def test_generate_quirks_writes_only_quirky_devices(tmp_path, sources):
    output = tmp_path / "quirks.json"

    exit_code = cli.main(["generate-quirks", str(sources["enrichment"]), str(output)])

    assert exit_code == cli.EXIT_OK
    assert json.loads(output.read_text()) == {EXTENDED: ["no-pin"]}


def test_export_cas_builds_registry_from_catalog(tmp_path, sources):
    catalog_path = tmp_path / "catalog.json"
    output = tmp_path / "cas.json"
    cli.main(["generate-ds", str(sources["feed"]), str(sources["enrichment"]), str(catalog_path)])

    exit_code = cli.main(["export-cas", str(catalog_path), str(output)])

    assert exit_code == cli.EXIT_OK
    registry = AttestationCaList.from_dict(json.loads(output.read_text()))
    assert len(registry) == 2
    allowed = {websafe_encode(att_ca.to_der()): att_ca.aaguids for att_ca in registry}
    assert allowed[websafe_encode(sources["mds_root"])] == {uuid.UUID(FEED_ONLY), uuid.UUID(EXTENDED)}
    assert allowed[websafe_encode(sources["local_root"])] == {uuid.UUID(LOCAL_ONLY)}


def test_export_cas_rejects_invalid_certificates(tmp_path):
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text(
        json.dumps([{"ca": websafe_encode(b"junk"), "skus": [{"aaguid": LOCAL_ONLY, "display_name": "Key"}]}])
    )
    output = tmp_path / "cas.json"

    assert cli.main(["export-cas", str(catalog_path), str(output)]) == cli.EXIT_FAILURE
    assert not output.exists()


@pytest.mark.parametrize(
    "argv",
    [
        ["generate-site", "mds.json", "enrichment", "site"],
        ["query", "catalog.json", "aaguid = x"],
    ],
)
def test_unimplemented_commands(argv):
    assert cli.main(argv) == cli.EXIT_UNIMPLEMENTED


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_export_cas_keeps_digest_order_on_disk(tmp_path, make_certificate):
    roots = [_der(make_certificate(f"Root {index}")) for index in range(12)]
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text(
        json.dumps(
            [
                {"ca": websafe_encode(root), "skus": [{"aaguid": LOCAL_ONLY, "display_name": "Key"}]}
                for root in roots
            ]
        )
    )
    output = tmp_path / "cas.json"

    assert cli.main(["export-cas", str(catalog_path), str(output)]) == cli.EXIT_OK

    key_ids = AttestationCaList.from_pairs((root, uuid.UUID(LOCAL_ONLY)) for root in roots).key_ids()
    assert list(json.loads(output.read_text())) == [websafe_encode(kid) for kid in sorted(key_ids)]
