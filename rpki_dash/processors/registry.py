#!/usr/bin/env python3
"""
Registry Annotator - owning RIR per route from IANA delegation tables

IPv4 rows carry a first-octet allocation such as ``010/8``; IPv6 rows a
CIDR such as ``2001:0200::/23``. Rows whose WHOIS column is not a
``whois.<rir>.<tld>`` hostname (reserved, multicast, unassigned) are
ignored. Each row is one bulk field-set over all matching routes, so when
ranges overlap the last row to finish wins.

IPv4 matching has two modes:

- ``cidr``: the allocation is encoded like any other prefix and matched by
  bit-string containment, the same way IPv6 rows are.
- ``legacy``: routes whose textual prefix starts with the allocation's
  decimal first octet (``"10"`` also matches ``100.x`` to ``109.x``). Kept for
  consumers that depend on the historical output.
"""

import logging
import re
from typing import Iterable, List, Optional

from ..database.core import RecordStore
from ..models import RegistryDelegation
from ..utils.logging import LoggingTimer
from ..utils.parallel import BoundedExecutor, StageReport
from .ingestion import RecordParseError
from .prefix_codec import PrefixCodecError, encode, encode_prefix

IPV4_RANGE = re.compile(r'^[0-9]{3}/[0-9]{1,2}')
IPV6_RANGE = re.compile(r'^[0-9a-f]{4}[:0-9a-f]*/[0-9]{1,3}')
WHOIS_HOST = re.compile(r'whois\.[a-z]+\.[a-z]+')

MATCH_CIDR = "cidr"
MATCH_LEGACY = "legacy"

RANGE_PATTERNS = {4: IPV4_RANGE, 6: IPV6_RANGE}


class AnnotationOutcome:
    APPLIED = "applied"
    IGNORED = "ignored"
    SKIPPED = "skipped"


def parse_delegation_row(row: List[str], family: int) -> Optional[RegistryDelegation]:
    """
    Reduce one IANA CSV row to a delegation, or None when the row does not
    describe a registry-owned range.
    """
    if len(row) < 4:
        return None

    prefix = row[0].strip()
    whois = row[3].strip()
    if not RANGE_PATTERNS[family].match(prefix):
        return None
    if not WHOIS_HOST.search(whois):
        return None

    return RegistryDelegation(prefix=prefix, rir=whois.split(".")[1],
                              address_family=family, whois=whois)


def ipv4_allocation_bits(prefix: str) -> str:
    """Bit-string of an IANA first-octet allocation such as '010/8'"""
    octet, _, length = prefix.partition("/")
    try:
        first_octet = int(octet)
        length = int(length)
    except ValueError:
        raise RecordParseError(f"malformed IPv4 allocation '{prefix}'")
    if not 0 <= first_octet <= 255:
        raise RecordParseError(f"first octet {first_octet} out of range in '{prefix}'")
    try:
        bits, _ = encode(f"{first_octet}.0.0.0", length)
    except PrefixCodecError as e:
        raise RecordParseError(str(e))
    return bits


class RegistryAnnotator:
    """Set the rir field of routes from delegation tables"""

    def __init__(self, store: RecordStore, executor: BoundedExecutor,
                 ipv4_match_mode: str = MATCH_CIDR,
                 logger: Optional[logging.Logger] = None):
        if ipv4_match_mode not in (MATCH_CIDR, MATCH_LEGACY):
            raise ValueError(f"Unknown IPv4 match mode: {ipv4_match_mode}")
        self.store = store
        self.executor = executor
        self.ipv4_match_mode = ipv4_match_mode
        self.logger = logger or logging.getLogger(__name__)

    def annotate(self, rows: Iterable[List[str]], family: int, collection: str) -> StageReport:
        """Apply every delegation row of one family to the routes collection"""
        with LoggingTimer(self.logger, f"adding RIRs for IPv{family} routes"):
            report = self.executor.run_stage(
                rows, self.apply_row, f"Adding RIRs for IPv{family}",
                family=family, collection=collection
            )

        self.logger.info(f"IPv{family}: {report.outcomes[AnnotationOutcome.APPLIED]} delegations applied, "
                         f"{report.outcomes[AnnotationOutcome.IGNORED]} rows ignored")
        return report

    def apply_row(self, row: List[str], family: int, collection: str) -> str:
        delegation = parse_delegation_row(row, family)
        if delegation is None:
            return AnnotationOutcome.IGNORED
        try:
            updated = self.apply_delegation(delegation, collection)
        except RecordParseError as e:
            self.logger.warning(f"Skipping delegation row {row!r}: {e}")
            return AnnotationOutcome.SKIPPED

        self.logger.debug(f"{delegation.prefix} -> {delegation.rir}: {updated} routes")
        return AnnotationOutcome.APPLIED

    def apply_delegation(self, delegation: RegistryDelegation, collection: str) -> int:
        """Bulk-set rir on all routes inside the delegation; returns routes updated"""
        fields = {'rir': delegation.rir}

        if delegation.address_family == 4:
            if self.ipv4_match_mode == MATCH_LEGACY:
                octet = delegation.prefix.partition("/")[0]
                return self.store.update_matching(
                    collection, fields, text_prefix=str(int(octet)), address_family=4
                )
            return self.store.update_matching(
                collection, fields,
                binary_prefix=ipv4_allocation_bits(delegation.prefix), address_family=4
            )

        try:
            bits, _, _ = encode_prefix(delegation.prefix, truncate=True)
        except PrefixCodecError as e:
            raise RecordParseError(str(e))
        return self.store.update_matching(collection, fields, binary_prefix=bits, address_family=6)
