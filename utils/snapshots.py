# =============================================================================
# utils/snapshots.py - Per-user record snapshots next to the input CSV
# =============================================================================

import json
import logging
from pathlib import Path
from typing import Optional

from werkzeug.utils import secure_filename

from core.models import DirectoryUserRecord


def snapshot_stem(principal_name: str) -> str:
    """Filesystem-safe file stem for a principal name"""
    return secure_filename(principal_name.replace('@', '_at_')) or 'unnamed'


def write_snapshots(output_dir: Path, principal_name: str, user: DirectoryUserRecord,
                    manager: Optional[DirectoryUserRecord] = None) -> list:
    """Write user (and manager) records as JSON; returns the written paths"""
    logger = logging.getLogger(__name__)
    stem = snapshot_stem(principal_name)
    written = []

    for suffix, record in (('user', user), ('manager', manager)):
        if record is None:
            continue
        path = Path(output_dir) / f"{stem}_{suffix}.json"
        with open(path, 'w', encoding='utf-8') as file:
            json.dump(record.as_dict(), file, indent=2, ensure_ascii=False)
        written.append(path)

    logger.debug(f"Wrote {len(written)} snapshot(s) for {principal_name}")
    return written
