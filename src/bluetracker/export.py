"""Save scan observations to timestamped JSON files."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from bluetracker.models import ScanObservation

logger = logging.getLogger(__name__)


def timestamped_path(output: Path | str, now: datetime | None = None) -> Path:
    """Insert a ``_YYYYmmdd_HHMMSS`` suffix before the file extension."""
    path = Path(output)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return path.with_name(f"{path.stem}_{stamp}{path.suffix}")


def save_observations(
    output: Path | str,
    observations: Sequence[ScanObservation],
    now: datetime | None = None,
) -> Path:
    """Write *observations* as pretty-printed JSON and return the file written."""
    path = timestamped_path(output, now)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [obs.model_dump() for obs in observations]
    path.write_text(json.dumps(payload, indent=2))
    logger.info("Saved %d observations to %s", len(observations), path)
    return path
