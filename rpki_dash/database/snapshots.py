"""Dated snapshot naming and document/model conversion"""
from dataclasses import dataclass
from datetime import date as date_type, datetime
from typing import Any, Dict, Optional

from ..models import Route, Validity, Vrp

DATE_FORMAT = "%Y-%m-%d"


def snapshot_date(today: Optional[date_type] = None) -> str:
    """Calendar-day key for a snapshot, YYYY-MM-DD"""
    return (today or datetime.now().date()).strftime(DATE_FORMAT)


@dataclass(frozen=True)
class Snapshot:
    """Collection names for one calendar day"""
    date: str

    @property
    def routes(self) -> str:
        return f"{self.date}-routes"

    @property
    def vrp(self) -> str:
        return f"{self.date}-vrp"

    @classmethod
    def for_date(cls, date: Optional[str] = None) -> 'Snapshot':
        return cls(date or snapshot_date())


def route_to_document(route: Route) -> Dict[str, Any]:
    return {
        'asn': route.asn,
        'prefix': route.prefix,
        'address_family': route.address_family,
        'binary': route.binary,
        'prefix_length': route.prefix_length,
        'validity': int(route.validity),
        'matched_vrp_ids': list(route.matched_vrp_ids),
        'rir': route.rir,
    }


def route_from_document(document: Dict[str, Any]) -> Route:
    return Route(
        id=document['id'],
        asn=document['asn'],
        prefix=document['prefix'],
        address_family=document['address_family'],
        binary=document['binary'],
        prefix_length=document['prefix_length'],
        validity=Validity(document['validity']),
        matched_vrp_ids=list(document['matched_vrp_ids']),
        rir=document['rir'],
    )


def vrp_to_document(vrp: Vrp) -> Dict[str, Any]:
    return {
        'asn': vrp.asn,
        'prefix': vrp.prefix,
        'max_length': vrp.max_length,
        'binary': vrp.binary,
        'address_family': vrp.address_family,
    }


def vrp_from_document(document: Dict[str, Any]) -> Vrp:
    return Vrp(
        id=document['id'],
        asn=document['asn'],
        prefix=document['prefix'],
        max_length=document['max_length'],
        binary=document['binary'],
        address_family=document['address_family'],
    )
