"""Migration safety helpers."""

from __future__ import annotations

from ..errors import MigrationError
from ..utils import get_logger

logger = get_logger("security.migrations")


def confirm_destructive_operation(operation: str, *, force: bool = False) -> None:
    if force:
        logger.warning("Applying destructive operation '%s' (force=True)", operation)
        return
    raise MigrationError(
        f"Destructive migration operation '{operation}' requires explicit confirmation (pass force=True).",
        value=operation,
    )
