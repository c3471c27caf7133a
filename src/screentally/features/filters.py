"""Filter-set construction: packages excluded from every derived output."""

from __future__ import annotations

from typing import Iterable

from screentally.core.defaults import DEFAULT_OWN_PACKAGE, SYSTEM_SHELL_PACKAGE
from screentally.core.types import AppMetadata
from screentally.storage.ports import MetadataRepository


def build_filter_set(
    metadata: Iterable[AppMetadata],
    *,
    own_package: str = DEFAULT_OWN_PACKAGE,
    system_shell_package: str = SYSTEM_SHELL_PACKAGE,
) -> frozenset[str]:
    """Return the packages to exclude for one aggregation run.

    A package is excluded when the user explicitly hid it, or, absent
    an explicit choice, when it is not launcher-visible.  The host app
    and the system shell are always excluded.

    Args:
        metadata: Full app-metadata collection.
        own_package: The host application's own package.
        system_shell_package: Package of the system UI shell.

    Returns:
        Immutable set of excluded package names.
    """
    excluded = {m.package_name for m in metadata if m.is_hidden}
    excluded.add(own_package)
    excluded.add(system_shell_package)
    return frozenset(excluded)


def load_filter_set(
    repository: MetadataRepository,
    *,
    own_package: str = DEFAULT_OWN_PACKAGE,
) -> frozenset[str]:
    return build_filter_set(repository.all_metadata(), own_package=own_package)
