#!/usr/bin/env python3
"""
Ingestion Stage - route dumps and VRP exports into the record store

Route dump lines look like ``asn<TAB>prefix<TAB>peerCount[...]``; anything
not starting with a decimal ASN is a header or comment. Routes seen by fewer
than ``min_peer_count`` collector peers are noise and are not stored.

VRP export lines look like ``ASN,Prefix,MaxLength[,...]`` behind an
``ASN,IP...`` header. The VRP collection is replaced on every load.

A line that cannot be parsed is skipped with a warning; store failures
propagate and abort the stage.
"""

import logging
import re
from typing import Iterable, Optional

from ..database.core import RecordStore
from ..database.snapshots import route_to_document, vrp_to_document
from ..models import Route, Validity, Vrp
from ..utils.logging import LoggingTimer, log_batch_summary
from ..utils.parallel import BoundedExecutor, StageReport
from .prefix_codec import FAMILY_WIDTH, PrefixCodecError, encode, split_prefix

ROUTE_LINE = re.compile(r'^[0-9]+')
ASN_PATTERN = re.compile(r'^[0-9]+$')
VRP_HEADER = "ASN,IP"
DEFAULT_MIN_PEER_COUNT = 5


class RecordParseError(ValueError):
    """Raised when a feed line has the right shape but unusable fields"""
    pass


class IngestOutcome:
    """Per-line outcomes tallied by the stage report"""
    ACCEPTED = "accepted"
    FILTERED = "filtered"   # below the peer visibility threshold
    IGNORED = "ignored"     # header, comment or blank line
    SKIPPED = "skipped"     # malformed


def parse_route_line(line: str, min_peer_count: int = DEFAULT_MIN_PEER_COUNT) -> Optional[Route]:
    """
    Normalize one route dump line.

    Returns None for non-route lines and for routes below the visibility
    threshold; raises RecordParseError for malformed route lines.
    """
    if not ROUTE_LINE.match(line):
        return None

    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < 3:
        raise RecordParseError(f"expected asn, prefix and peer count, got {len(fields)} field(s)")

    asn, prefix, seen = fields[0].strip(), fields[1].strip(), fields[2].strip()
    if not ASN_PATTERN.match(asn):
        raise RecordParseError(f"non-numeric ASN '{asn}'")
    try:
        peer_count = int(seen)
    except ValueError:
        raise RecordParseError(f"non-numeric peer count '{seen}'")

    if peer_count < min_peer_count:
        return None

    try:
        address, length = split_prefix(prefix)
        binary, family = encode(address)
    except PrefixCodecError as e:
        raise RecordParseError(str(e))

    if length is None:
        length = FAMILY_WIDTH[family]
    elif not 0 <= length <= FAMILY_WIDTH[family]:
        raise RecordParseError(f"prefix length {length} out of range for IPv{family}")

    return Route(
        asn=asn,
        prefix=prefix,
        address_family=family,
        binary=binary,
        prefix_length=length,
        validity=Validity.UNKNOWN,
        rir="",
    )


def parse_vrp_line(line: str) -> Optional[Vrp]:
    """
    Normalize one VRP export line.

    Returns None for the header and blank lines; raises RecordParseError for
    malformed entries.
    """
    line = line.strip()
    if not line or line.startswith(VRP_HEADER):
        return None

    fields = line.split(",")
    if len(fields) < 3:
        raise RecordParseError(f"expected ASN, prefix and max length, got {len(fields)} field(s)")

    asn = fields[0].strip().upper()
    if asn.startswith("AS"):
        asn = asn[2:]
    if not ASN_PATTERN.match(asn):
        raise RecordParseError(f"non-numeric ASN '{fields[0]}'")

    prefix = fields[1].strip()
    try:
        max_length = int(fields[2].strip())
    except ValueError:
        raise RecordParseError(f"non-numeric max length '{fields[2].strip()}'")

    try:
        address, length = split_prefix(prefix)
        if length is None:
            raise RecordParseError(f"VRP prefix '{prefix}' has no length")
        binary, family = encode(address, length)
    except PrefixCodecError as e:
        raise RecordParseError(str(e))

    if not length <= max_length <= FAMILY_WIDTH[family]:
        raise RecordParseError(f"max length {max_length} outside {length}..{FAMILY_WIDTH[family]}")

    return Vrp(asn=asn, prefix=prefix, max_length=max_length,
               binary=binary, address_family=family)


class RouteIngestor:
    """Load a route dump into a dated routes collection"""

    def __init__(self, store: RecordStore, executor: BoundedExecutor,
                 min_peer_count: int = DEFAULT_MIN_PEER_COUNT,
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.executor = executor
        self.min_peer_count = min_peer_count
        self.logger = logger or logging.getLogger(__name__)

    def ingest(self, lines: Iterable[str], collection: str, source: str = "route dump") -> StageReport:
        """
        Insert every visible route from lines into collection

        The collection is created if missing (IPv4 and IPv6 dumps share one
        collection) and indexed on (binary, prefix) afterwards.
        """
        self.store.create_collection(collection, "routes")

        with LoggingTimer(self.logger, f"processing {source}"):
            report = self.executor.run_stage(
                lines, self._ingest_line, f"Processing {source}", collection=collection
            )
            self.store.ensure_index(collection, "binary", "prefix")

        relevant = report.completed - report.outcomes[IngestOutcome.IGNORED]
        log_batch_summary(self.logger, f"Ingested {source}", relevant,
                          report.outcomes[IngestOutcome.ACCEPTED], report.duration)
        if report.outcomes[IngestOutcome.FILTERED]:
            self.logger.info(f"Dropped {report.outcomes[IngestOutcome.FILTERED]} routes seen by "
                             f"fewer than {self.min_peer_count} peers")
        return report

    def _ingest_line(self, line: str, collection: str) -> str:
        try:
            route = parse_route_line(line, self.min_peer_count)
        except RecordParseError as e:
            self.logger.warning(f"Skipping route line {line!r}: {e}")
            return IngestOutcome.SKIPPED

        if route is None:
            return IngestOutcome.FILTERED if ROUTE_LINE.match(line) else IngestOutcome.IGNORED

        route.id = self.store.insert(collection, route_to_document(route))
        return IngestOutcome.ACCEPTED


class VrpIngestor:
    """Replace a dated VRP collection with the contents of an export"""

    def __init__(self, store: RecordStore, executor: BoundedExecutor,
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.executor = executor
        self.logger = logger or logging.getLogger(__name__)

    def ingest(self, lines: Iterable[str], collection: str) -> StageReport:
        """Drop collection, load every VRP from lines, then index it"""
        self.store.drop_collection(collection)
        self.store.create_collection(collection, "vrp")

        with LoggingTimer(self.logger, "processing VRP export"):
            report = self.executor.run_stage(
                lines, self._ingest_line, "Processing VRP", collection=collection
            )
            self.store.ensure_index(collection, "binary", "prefix")

        relevant = report.completed - report.outcomes[IngestOutcome.IGNORED]
        log_batch_summary(self.logger, "Ingested VRP export", relevant,
                          report.outcomes[IngestOutcome.ACCEPTED], report.duration)
        return report

    def _ingest_line(self, line: str, collection: str) -> str:
        try:
            vrp = parse_vrp_line(line)
        except RecordParseError as e:
            self.logger.warning(f"Skipping VRP line {line!r}: {e}")
            return IngestOutcome.SKIPPED

        if vrp is None:
            return IngestOutcome.IGNORED

        vrp.id = self.store.insert(collection, vrp_to_document(vrp))
        return IngestOutcome.ACCEPTED
