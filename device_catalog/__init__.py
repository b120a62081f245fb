"""Webauthn device catalog: FIDO MDS reconciliation and attestation CA registry."""
from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

_EXPORTS = {
    "AttestationCa": ".attestation_ca",
    "AttestationCaList": ".attestation_ca",
    "Authority": ".statements",
    "Enrichment": ".enrichment",
    "EnrichedDevice": ".reconcile",
    "load_feed": ".mds",
    "main": ".cli",
    "project_authorities": ".statements",
    "project_quirks": ".statements",
    "reconcile": ".reconcile",
}

__all__ = sorted(_EXPORTS)


if TYPE_CHECKING:  # pragma: no cover - import only for static analysis.
    from .attestation_ca import AttestationCa, AttestationCaList  # noqa: F401
    from .cli import main  # noqa: F401
    from .enrichment import Enrichment  # noqa: F401
    from .mds import load_feed  # noqa: F401
    from .reconcile import EnrichedDevice, reconcile  # noqa: F401
    from .statements import Authority, project_authorities, project_quirks  # noqa: F401


def __getattr__(name: str) -> Any:
    """Lazily import attributes exposed at the package level.

    Keeps ``import device_catalog.config`` free of the certificate and
    metadata stacks, which tests rely on when reloading configuration.
    """

    module_name = _EXPORTS.get(name)
    if module_name is not None:
        module = import_module(module_name, __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
