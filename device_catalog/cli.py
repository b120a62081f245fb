"""Command line entry point for the device catalog generator and query tool."""
from __future__ import annotations

import argparse
import logging
import sys
import uuid
from typing import Callable, List, NoReturn, Optional, Sequence

from . import config
from .attestation_ca import AttestationCaList
from .enrichment import Enrichment, index_enrichment
from .errors import CatalogError
from .mds import index_feed, load_feed
from .reconcile import AaguidFilter, allow_aaguids, reconcile
from .statements import (
    load_catalog,
    project_authorities,
    project_quirks,
    serialize_catalog,
    serialize_quirks,
)
from .storage import read_json, write_json

LOGGER = logging.getLogger("device_catalog.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNIMPLEMENTED = 2


def _configure_logging(debug: bool) -> None:
    level = config.LOG_LEVEL or ("DEBUG" if debug else "INFO")
    logging.basicConfig(level=level, format=config.LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("device_catalog").setLevel(level)


def _resolve_aaguid_filter(aaguids: Optional[List[uuid.UUID]]) -> Optional[AaguidFilter]:
    if aaguids:
        return allow_aaguids(aaguids)
    if config.AAGUID_FILTER:
        LOGGER.info(
            "Restricting reconciliation to %d AAGUIDs from DEVICE_CATALOG_AAGUID_FILTER.",
            len(config.AAGUID_FILTER),
        )
        return allow_aaguids(config.AAGUID_FILTER)
    return None


def generate_ds(args: argparse.Namespace) -> int:
    enrichment = Enrichment.load(args.enrichment_path)
    verify = False if args.no_verify else None
    feed = load_feed(args.fido_mds_path, verify=verify)

    devices = reconcile(
        index_feed(feed),
        index_enrichment(enrichment.devices),
        aaguid_filter=_resolve_aaguid_filter(args.aaguid),
    )
    authorities = project_authorities(devices)

    write_json(args.output, serialize_catalog(authorities))
    LOGGER.info("Wrote %d authorities to %s.", len(authorities), args.output)
    return EXIT_OK


def generate_quirks(args: argparse.Namespace) -> int:
    enrichment = Enrichment.load(args.enrichment_path)
    quirks = project_quirks(enrichment.devices)

    write_json(args.output, serialize_quirks(quirks))
    LOGGER.info("Wrote quirks for %d AAGUIDs to %s.", len(quirks), args.output)
    return EXIT_OK


def export_cas(args: argparse.Namespace) -> int:
    authorities = load_catalog(read_json(args.catalog_path))
    registry = AttestationCaList.from_pairs(
        (authority.ca, sku.aaguid) for authority in authorities for sku in authority.skus
    )

    write_json(args.output, registry.to_dict())
    LOGGER.info("Wrote %d attestation CAs to %s.", len(registry), args.output)
    return EXIT_OK


def _not_implemented(args: argparse.Namespace) -> int:
    LOGGER.error("The %s command is not implemented yet.", args.command)
    return EXIT_UNIMPLEMENTED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="device-catalog",
        description="Webauthn device catalog generator and query tool.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    def add_command(name: str, help_text: str, handler: Callable[[argparse.Namespace], int]):
        command = subparsers.add_parser(name, help=help_text, description=help_text)
        command.add_argument("-d", "--debug", action="store_true", help="Enable debug logging.")
        command.set_defaults(handler=handler)
        return command

    generate_ds_parser = add_command(
        "generate-ds",
        "Given a FIDO MDS and the enrichment data, generate the device statements.",
        generate_ds,
    )
    generate_ds_parser.add_argument(
        "--aaguid",
        action="append",
        type=uuid.UUID,
        help="Only reconcile this AAGUID. May be repeated.",
    )
    generate_ds_parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Do not verify the signature of a FIDO MDS BLOB.",
    )
    generate_ds_parser.add_argument("fido_mds_path")
    generate_ds_parser.add_argument("enrichment_path")
    generate_ds_parser.add_argument("output")

    generate_site_parser = add_command(
        "generate-site",
        "Given a FIDO MDS and the enrichment data, generate the device catalog site.",
        _not_implemented,
    )
    generate_site_parser.add_argument("fido_mds_path")
    generate_site_parser.add_argument("enrichment_path")
    generate_site_parser.add_argument("output")

    generate_quirks_parser = add_command(
        "generate-quirks",
        "Given the enrichment data, generate the authenticator quirks file.",
        generate_quirks,
    )
    generate_quirks_parser.add_argument("enrichment_path")
    generate_quirks_parser.add_argument("output")

    export_cas_parser = add_command(
        "export-cas",
        "Given generated device statements, emit the attestation CAs and their AAGUIDs.",
        export_cas,
    )
    export_cas_parser.add_argument("catalog_path")
    export_cas_parser.add_argument("output")

    query_parser = add_command(
        "query",
        "Query the device catalog based on an expression.",
        _not_implemented,
    )
    query_parser.add_argument("dcpath")
    query_parser.add_argument("expression")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.debug)

    try:
        return args.handler(args)
    except CatalogError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return EXIT_FAILURE
    except OSError as exc:
        LOGGER.error("%s failed to access the filesystem: %s", args.command, exc)
        return EXIT_FAILURE


def run() -> NoReturn:
    """Execute the CLI and exit with the appropriate status code."""

    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover - CLI execution
    run()
