"""
RPKI Dash Data Models

Records stored per dated snapshot: observed routes, VRPs, and the registry
delegations used to annotate routes.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional


class Validity(IntEnum):
    """Route origin validation states, stored as their integer codes"""
    UNKNOWN = -1
    VALID = 0
    FIXED_LENGTH_EXCEEDED = 1
    RANGE_LENGTH_EXCEEDED = 2
    ASN_MISMATCH = 3
    ASN_AND_LENGTH_MISMATCH = 4

    @property
    def label(self) -> str:
        return VALIDITY_LABELS[self]


VALIDITY_LABELS = {
    Validity.UNKNOWN: "Unknown",
    Validity.VALID: "Valid",
    Validity.FIXED_LENGTH_EXCEEDED: "FixedLengthExceeded",
    Validity.RANGE_LENGTH_EXCEEDED: "RangeLengthExceeded",
    Validity.ASN_MISMATCH: "AsnMismatch",
    Validity.ASN_AND_LENGTH_MISMATCH: "AsnAndLengthMismatch",
}


@dataclass
class Route:
    """
    An observed BGP announcement.

    binary encodes the full address (32 or 128 bits); prefix_length is the
    announced length and is what validation compares against maxLength.
    """
    asn: str
    prefix: str
    address_family: int
    binary: str
    prefix_length: int
    validity: Validity = Validity.UNKNOWN
    matched_vrp_ids: List[int] = field(default_factory=list)
    rir: str = ""
    id: Optional[int] = None


@dataclass
class Vrp:
    """A validated ROA payload: asn may originate prefix up to max_length"""
    asn: str
    prefix: str
    max_length: int
    binary: str
    address_family: int
    id: Optional[int] = None

    @property
    def prefix_length(self) -> int:
        return len(self.binary)


@dataclass
class RegistryDelegation:
    """One IANA delegation row reduced to the range and owning registry"""
    prefix: str
    rir: str
    address_family: int
    whois: str = ""


@dataclass
class SnapshotSummary:
    """Aggregate counts for one dated snapshot"""
    date: str
    total_routes: int = 0
    total_vrps: int = 0
    validity_counts: Dict[str, int] = field(default_factory=dict)
    rir_counts: Dict[str, int] = field(default_factory=dict)
    family_counts: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'date': self.date,
            'total_routes': self.total_routes,
            'total_vrps': self.total_vrps,
            'routes_by_family': {f"ipv{k}": v for k, v in sorted(self.family_counts.items())},
            'routes_by_validity': dict(self.validity_counts),
            'routes_by_rir': dict(self.rir_counts),
        }

    def to_summary(self) -> str:
        """Generate a human-readable summary string."""
        lines = [
            f"Snapshot {self.date}",
            f"Routes: {self.total_routes}",
            f"VRPs: {self.total_vrps}",
        ]
        for label, count in self.validity_counts.items():
            lines.append(f"  {label}: {count}")
        if self.rir_counts:
            lines.append("RIRs:")
            for rir, count in sorted(self.rir_counts.items()):
                lines.append(f"  {rir or 'unassigned'}: {count}")
        return "\n".join(lines)


@dataclass
class PipelineResult:
    """
    Result of one batch run.
    Stage reports are keyed by stage name.
    """
    date: str
    success: bool = True
    stages: Dict[str, dict] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    summary: Optional[SnapshotSummary] = None
    execution_time: float = 0.0
    report_file: Optional[str] = None
