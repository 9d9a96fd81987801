"""Feature tiers of the table function runtime.

Scalar table functions shipped in an earlier platform revision than
table-argument functions with ``PARTITION BY`` support, so the two are
gated separately.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Optional

from udtflow.exceptions import ConfigurationError


class Capability(Enum):
    SCALAR_TABLE_FUNCTIONS = "scalar_table_functions"
    TABLE_ARGUMENT_FUNCTIONS = "table_argument_functions"


REVISION_CAPABILITIES = {
    "1": frozenset({Capability.SCALAR_TABLE_FUNCTIONS}),
    "2": frozenset(
        {Capability.SCALAR_TABLE_FUNCTIONS, Capability.TABLE_ARGUMENT_FUNCTIONS}
    ),
}

LATEST_REVISION = "2"


def capabilities_for_revision(revision: str) -> FrozenSet[Capability]:
    """Return the capabilities available at a platform revision.

    Raises:
        ConfigurationError: If the revision is unknown
    """
    try:
        return REVISION_CAPABILITIES[str(revision)]
    except KeyError:
        raise ConfigurationError(
            f"Unknown platform revision '{revision}', "
            f"expected one of {sorted(REVISION_CAPABILITIES)}"
        ) from None


def resolve_capabilities(
    revision: str = LATEST_REVISION, features: Optional[Iterable[str]] = None
) -> FrozenSet[Capability]:
    """Resolve capabilities from an explicit feature list or a revision."""
    if features is None:
        return capabilities_for_revision(revision)

    resolved = set()
    for feature in features:
        try:
            resolved.add(Capability(str(feature).lower()))
        except ValueError:
            raise ConfigurationError(f"Unknown feature '{feature}'") from None
    return frozenset(resolved)
