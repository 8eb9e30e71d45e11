"""
Snapshot Summary - aggregate counts for a dated snapshot

Builds validity, RIR and address family counts from the record store and
writes them as a YAML file next to earlier snapshots' summaries.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml

from ..database.core import RecordStore
from ..database.snapshots import Snapshot
from ..models import SnapshotSummary, Validity


def build_summary(store: RecordStore, snapshot: Snapshot) -> SnapshotSummary:
    """Count routes per validity, RIR and family, and VRPs, for one snapshot"""
    summary = SnapshotSummary(date=snapshot.date)

    if store.collection_exists(snapshot.routes):
        summary.total_routes = store.count(snapshot.routes)
        by_validity = store.count_by(snapshot.routes, 'validity')
        summary.validity_counts = {
            state.label: by_validity.get(int(state), 0) for state in Validity
        }
        summary.rir_counts = store.count_by(snapshot.routes, 'rir')
        summary.family_counts = store.count_by(snapshot.routes, 'address_family')

    if store.collection_exists(snapshot.vrp):
        summary.total_vrps = store.count(snapshot.vrp)

    return summary


class SummaryWriter:
    """Write snapshot summaries as YAML"""

    def __init__(self, output_dir: Path, logger: Optional[logging.Logger] = None):
        """
        Initialize SummaryWriter.

        Args:
            output_dir: Directory for summary files, created if missing
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def write(self, summary: SnapshotSummary) -> Path:
        """Write {date}-summary.yaml and return its path"""
        document = {
            "_metadata": {
                "generated_at": datetime.now().isoformat(),
                "generator": "rpki-dash",
                "warning": "AUTO-GENERATED FILE - DO NOT EDIT MANUALLY",
            },
            "snapshot": summary.to_dict(),
        }

        path = self.output_dir / f"{summary.date}-summary.yaml"
        with open(path, "w") as f:
            f.write("# AUTO-GENERATED FILE - DO NOT EDIT MANUALLY\n")
            f.write(f"# Snapshot {summary.date} summary, regenerated on every run\n\n")
            yaml.safe_dump(document, f, default_flow_style=False, sort_keys=False, indent=2)

        self.logger.info(f"Wrote snapshot summary to {path}")
        return path
