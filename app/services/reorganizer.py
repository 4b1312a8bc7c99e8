"""
Reorganizer
Moves a trained model's blobs from its provisional folder to the folder named
after the provider character id.

The blob store has no rename, so each object is copied then deleted. The move
is best effort: a failing object is logged and recorded in the outcome, and the
remaining objects are still moved.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from app.services.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass
class ReorganizeOutcome:
    moved: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (key, error)

    @property
    def complete(self) -> bool:
        return not self.failures


def _as_prefix(key: str) -> str:
    return key if key.endswith("/") else f"{key}/"


class Reorganizer:
    def __init__(self, storage: StorageService):
        self.storage = storage

    async def reorganize(self, owner_id: str, provisional_key: str, final_key: str) -> ReorganizeOutcome:
        """
        Relocate every object under provisional_key to final_key.

        Both keys must live under users/<owner_id>/. Paths below the prefix
        are preserved. Never raises; an empty or already-moved prefix gives moved=0.
        """
        outcome = ReorganizeOutcome()
        source = _as_prefix(provisional_key)
        target = _as_prefix(final_key)
        owner_root = f"users/{owner_id}/"

        if source == target:
            return outcome
        if not (source.startswith(owner_root) and target.startswith(owner_root)):
            logger.error(f"[Reorganize] Refusing to move {source} -> {target}: outside {owner_root}")
            outcome.failures.append((source, "prefix outside owner namespace"))
            return outcome

        try:
            keys = await self.storage.list_keys(source)
        except Exception as e:
            logger.error(f"[Reorganize] Could not list {source}: {e}")
            outcome.failures.append((source, str(e)))
            return outcome

        if not keys:
            logger.info(f"[Reorganize] Nothing to move under {source}")
            return outcome

        logger.info(f"[Reorganize] Moving {len(keys)} object(s) {source} -> {target}")

        for old_key in keys:
            new_key = target + old_key[len(source):]
            try:
                await self.storage.copy(old_key, new_key)
                await self.storage.delete(old_key)
            except Exception as e:
                logger.error(f"[Reorganize] Failed to move {old_key}: {e}")
                outcome.failures.append((old_key, str(e)))
                continue
            outcome.moved += 1
            logger.debug(f"[Reorganize] Moved {old_key} -> {new_key}")

        if outcome.failures:
            logger.warning(
                f"[Reorganize] Moved {outcome.moved}/{len(keys)} object(s); "
                f"{len(outcome.failures)} left under {source}"
            )
        else:
            logger.info(f"[Reorganize] Moved {outcome.moved} object(s) to {target}")
        return outcome


__all__ = ["Reorganizer", "ReorganizeOutcome"]
