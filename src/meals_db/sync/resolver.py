"""Resolution strategies for detected mismatches.

Each strategy turns one ``Mismatch`` into one gateway call:

- ``IgnoreResolver``: store an ignore rule for the exact value pair.
- ``AcceptResolver``: take the WordPress value into the Meals DB client.
- ``SyncResolver``: push the Meals DB value to the WordPress user.

The ``create_resolver()`` factory maps strategy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .models import Mismatch, OperationResult

if TYPE_CHECKING:
    from .mutate import SyncMutate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class MismatchResolver(Protocol):
    """Protocol that all mismatch resolvers must satisfy."""

    name: str

    def apply(
        self, mismatch: Mismatch, gateway: SyncMutate, actor: int = 0
    ) -> OperationResult:
        """Resolve *mismatch* through *gateway*.

        Args:
            mismatch: The divergent field.
            gateway: Mutation gateway performing the write.
            actor: Operator id recorded in the audit log.

        Returns:
            The gateway's result.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class IgnoreResolver:
    """Suppress the mismatch until either value changes."""

    name = "ignore"

    def apply(
        self, mismatch: Mismatch, gateway: SyncMutate, actor: int = 0
    ) -> OperationResult:
        return gateway.set_ignored(
            mismatch.field_name,
            mismatch.value_from_client,
            mismatch.value_from_wp,
            True,
            actor,
        )


class AcceptResolver:
    """Treat WordPress as correct and copy its value to the client."""

    name = "accept"

    def apply(
        self, mismatch: Mismatch, gateway: SyncMutate, actor: int = 0
    ) -> OperationResult:
        return gateway.push_to_client(
            mismatch.client_id, mismatch.field_name, mismatch.value_from_wp, actor
        )


class SyncResolver:
    """Treat the Meals DB as correct and push its value to WordPress."""

    name = "sync"

    def apply(
        self, mismatch: Mismatch, gateway: SyncMutate, actor: int = 0
    ) -> OperationResult:
        return gateway.push_to_wordpress(
            mismatch.wp_user_id,
            mismatch.field_name,
            mismatch.value_from_client,
            actor,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "ignore": IgnoreResolver,
    "accept": AcceptResolver,
    "sync": SyncResolver,
}

STRATEGIES = tuple(_STRATEGY_MAP)


def create_resolver(strategy: str) -> MismatchResolver:
    """Create a resolver for the given strategy string.

    Args:
        strategy: One of ``"ignore"``, ``"accept"``, ``"sync"``.

    Returns:
        A ``MismatchResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown resolution strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
