"""Batch ingestion of scan observations into the detection store.

Pipeline stages, per batch:
1. Resolve each observation's manufacturer id from its payload
2. Open one store transaction
3. For each observation: insert the device if unseen, append a detection
4. Commit -- or roll back the whole batch on the first failure
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from bluetracker.manufacturers import resolve_manufacturer_id
from bluetracker.models import ScanObservation
from bluetracker.store import DetectionStore

logger = logging.getLogger(__name__)

Resolver = Callable[[str], int | None]


@dataclass(frozen=True)
class IngestReport:
    """Outcome of one committed batch."""

    observations: int = 0
    devices_created: int = 0
    detections_written: int = 0
    unresolved_manufacturers: int = 0


def fill_location(
    observations: Iterable[ScanObservation],
    latitude: float | None,
    longitude: float | None,
) -> list[ScanObservation]:
    """Stamp the observer position onto observations that carry none.

    Observations with their own coordinates are left untouched. Nothing is
    changed unless both coordinates are given.
    """
    result = list(observations)
    if latitude is None or longitude is None:
        return result
    return [
        obs if obs.has_location else obs.model_copy(update={"latitude": latitude, "longitude": longitude})
        for obs in result
    ]


class IngestionPipeline:
    """Commits batches of scan observations as all-or-nothing units.

    Parameters
    ----------
    store:
        Open detection store.
    resolver:
        Maps a manufacturer payload to a company id. Defaults to
        ``resolve_manufacturer_id``.
    """

    def __init__(
        self,
        store: DetectionStore,
        resolver: Resolver = resolve_manufacturer_id,
    ) -> None:
        self._store = store
        self._resolver = resolver

    async def ingest(self, observations: Sequence[ScanObservation]) -> IngestReport:
        """Write every observation in one transaction and report what changed.

        Observations of the same address within a batch each produce a
        detection under a single device row.

        Raises
        ------
        StorageError
            If any write fails; no row from this batch is kept.
        """
        if not observations:
            return IngestReport()

        resolved: list[tuple[ScanObservation, int | None]] = []
        unresolved = 0
        for obs in observations:
            manufacturer_id = self._resolver(obs.manufacturer_data)
            if manufacturer_id is None:
                unresolved += 1
                if obs.manufacturer_data:
                    logger.debug(
                        "No manufacturer id in payload for %s: %r",
                        obs.address, obs.manufacturer_data,
                    )
            resolved.append((obs, manufacturer_id))

        created = 0
        async with self._store.transaction():
            for obs, manufacturer_id in resolved:
                if await self._store.write_observation(obs, manufacturer_id):
                    created += 1

        report = IngestReport(
            observations=len(resolved),
            devices_created=created,
            detections_written=len(resolved),
            unresolved_manufacturers=unresolved,
        )
        logger.info(
            "Ingested %d observations (%d new devices, %d unresolved manufacturers)",
            report.observations, report.devices_created, report.unresolved_manufacturers,
        )
        return report
