import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ..engine.models import DirectoryAccount, DirectoryDevice

logger = logging.getLogger(__name__)


def write_snapshot(
    backup_dir: Path,
    run_id: str,
    accounts: Iterable[DirectoryAccount],
    devices: Iterable[DirectoryDevice],
) -> Path:
    """Write the directory state a run started from, before anything is changed."""
    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    path = backup_dir / f"snapshot-{run_id}.json"

    accounts = [asdict(a) for a in accounts]
    devices = [asdict(d) for d in devices]
    payload = {
        "run_id": run_id,
        "taken_at": datetime.now(timezone.utc).isoformat(),
        "accounts": accounts,
        "devices": devices,
    }
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info(f"Backed up {len(accounts)} account(s) and {len(devices)} device(s) to {path}")
    return path
