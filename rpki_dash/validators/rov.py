#!/usr/bin/env python3
"""
Route Origin Validation engine

For every VRP, candidate routes are those of the same address family whose
full-address bit-string starts with the VRP's network bits and whose
announced length is at least the VRP's length, i.e. the route's network
falls inside the VRP's covered range. Each candidate is classified against
the VRP and the VRP id is appended to the route's match trail.

Precedence: Valid beats every mismatch state, so a route already Valid by
some VRP is never downgraded by another, whatever order VRPs run in.
"""

import logging
import threading
from typing import List, Optional

from ..database.core import RecordStore
from ..database.snapshots import Snapshot, route_from_document, vrp_from_document
from ..models import Route, Validity, Vrp
from ..utils.logging import LoggingTimer
from ..utils.parallel import BoundedExecutor, StageReport, StripedLock


class ValidationOutcome:
    MATCHED = "matched"
    UNMATCHED = "unmatched"


def classify(route_asn: str, route_length: int, vrp_asn: str,
             roa_length: int, roa_max_length: int,
             current: Validity = Validity.UNKNOWN) -> Validity:
    """
    Validity of a covered route against one VRP.

    Args:
        route_asn: Origin ASN of the route
        route_length: Announced prefix length of the route
        vrp_asn: Authorized ASN
        roa_length: Prefix length of the VRP
        roa_max_length: Maximum authorized length
        current: Validity the route already carries

    Returns:
        The new validity; Valid when current is Valid
    """
    same_asn = route_asn == vrp_asn
    within_length = route_length <= roa_max_length

    if same_asn and within_length:
        return Validity.VALID
    if current == Validity.VALID:
        return Validity.VALID
    if same_asn:
        if roa_length == roa_max_length:
            return Validity.FIXED_LENGTH_EXCEEDED
        return Validity.RANGE_LENGTH_EXCEEDED
    if within_length:
        return Validity.ASN_MISMATCH
    return Validity.ASN_AND_LENGTH_MISMATCH


def is_candidate(route: Route, vrp: Vrp) -> bool:
    """True when the route's network lies inside the VRP's prefix"""
    return (route.address_family == vrp.address_family
            and route.prefix_length >= vrp.prefix_length
            and route.binary.startswith(vrp.binary))


class RouteOriginValidator:
    """Apply every VRP of a snapshot to the snapshot's routes"""

    def __init__(self, store: RecordStore, executor: BoundedExecutor,
                 reset_before_validation: bool = True,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize validator

        Args:
            store: Record store holding the snapshot
            executor: Shared bounded executor
            reset_before_validation: Clear validity and match trails first so
                a re-run does not accumulate duplicate VRP ids
            logger: Optional logger instance
        """
        self.store = store
        self.executor = executor
        self.reset_before_validation = reset_before_validation
        self.logger = logger or logging.getLogger(__name__)
        self._record_locks = StripedLock(256)
        self._counter_lock = threading.Lock()
        self.updates = 0

    def validate(self, snapshot: Snapshot) -> StageReport:
        """Run one validation pass over the snapshot"""
        vrps = [vrp_from_document(document) for document in self.store.find_all(snapshot.vrp)]
        self.updates = 0

        if self.reset_before_validation:
            reset = self.store.update_matching(
                snapshot.routes,
                {'validity': Validity.UNKNOWN, 'matched_vrp_ids': []}
            )
            self.logger.info(f"Reset validity on {reset} routes in {snapshot.routes}")

        with LoggingTimer(self.logger, f"validating routes against {len(vrps)} VRPs"):
            report = self.executor.run_stage(
                vrps, self.apply_vrp, "Validating routes", collection=snapshot.routes
            )

        self.logger.info(
            f"Validation complete: {report.outcomes[ValidationOutcome.MATCHED]}/{len(vrps)} VRPs "
            f"covered at least one route, {self.updates} route updates"
        )
        return report

    def find_candidates(self, vrp: Vrp, collection: str) -> List[Route]:
        """Routes inside the VRP's prefix, via the (binary, prefix) index"""
        documents = self.store.find_by_prefix(collection, vrp.binary, vrp.address_family)
        return [route for route in map(route_from_document, documents) if is_candidate(route, vrp)]

    def apply_vrp(self, vrp: Vrp, collection: str) -> str:
        """Classify every candidate route against one VRP and persist the result"""
        candidates = self.find_candidates(vrp, collection)

        for candidate in candidates:
            # Re-read under the record lock so the decision sees the latest state
            with self._record_locks.for_key(candidate.id):
                document = self.store.get(collection, candidate.id)
                if document is None:
                    continue
                route = route_from_document(document)
                route.validity = classify(route.asn, route.prefix_length, vrp.asn,
                                          vrp.prefix_length, vrp.max_length, route.validity)
                route.matched_vrp_ids.append(vrp.id)
                self.store.update_fields(collection, route.id, {
                    'validity': route.validity,
                    'matched_vrp_ids': route.matched_vrp_ids,
                })

        with self._counter_lock:
            self.updates += len(candidates)

        if candidates:
            self.logger.debug(f"VRP {vrp.id} AS{vrp.asn} {vrp.prefix}-{vrp.max_length}: "
                              f"{len(candidates)} candidate routes")
            return ValidationOutcome.MATCHED
        return ValidationOutcome.UNMATCHED
