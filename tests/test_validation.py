"""Tests for route origin validation."""

import pytest

from rpki_dash.database.snapshots import Snapshot, route_from_document
from rpki_dash.models import Route, Validity, Vrp
from rpki_dash.processors.ingestion import RouteIngestor, VrpIngestor
from rpki_dash.processors.prefix_codec import encode
from rpki_dash.validators.rov import RouteOriginValidator, ValidationOutcome, classify, is_candidate


def load_snapshot(store, executor, snapshot, vrp_lines, route_lines):
    VrpIngestor(store, executor).ingest(vrp_lines, snapshot.vrp)
    RouteIngestor(store, executor).ingest(route_lines, snapshot.routes)


def routes_by_prefix(store, snapshot):
    return {doc['prefix']: route_from_document(doc) for doc in store.find_all(snapshot.routes)}


def vrp_ids(store, snapshot):
    return {doc['asn']: doc['id'] for doc in store.find_all(snapshot.vrp)}


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------

@pytest.mark.parametrize("route_asn,route_length,roa_length,roa_max_length,expected", [
    ("100", 24, 16, 24, Validity.VALID),
    ("100", 16, 16, 16, Validity.VALID),
    ("100", 25, 24, 24, Validity.FIXED_LENGTH_EXCEEDED),
    ("100", 25, 16, 24, Validity.RANGE_LENGTH_EXCEEDED),
    ("200", 24, 16, 24, Validity.ASN_MISMATCH),
    ("200", 25, 16, 24, Validity.ASN_AND_LENGTH_MISMATCH),
    ("200", 25, 24, 24, Validity.ASN_AND_LENGTH_MISMATCH),
])
def test_classify(route_asn, route_length, roa_length, roa_max_length, expected):
    assert classify(route_asn, route_length, "100", roa_length, roa_max_length) == expected


def test_validity_codes_are_stable():
    assert [int(v) for v in Validity] == [-1, 0, 1, 2, 3, 4]
    assert Validity.ASN_AND_LENGTH_MISMATCH.label == "AsnAndLengthMismatch"


def test_valid_is_never_downgraded():
    assert classify("200", 25, "100", 16, 24, current=Validity.VALID) == Validity.VALID
    assert classify("100", 25, "100", 24, 24, current=Validity.VALID) == Validity.VALID


def test_mismatch_is_upgraded_to_valid():
    assert classify("100", 24, "100", 16, 24, current=Validity.ASN_MISMATCH) == Validity.VALID


def test_later_mismatch_overwrites_earlier_mismatch():
    assert (classify("200", 24, "100", 16, 24, current=Validity.FIXED_LENGTH_EXCEEDED)
            == Validity.ASN_MISMATCH)


# ---------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------

def make_route(prefix, asn="100"):
    address, length = prefix.split("/")
    binary, family = encode(address)
    return Route(asn=asn, prefix=prefix, address_family=family,
                 binary=binary, prefix_length=int(length))


def make_vrp(prefix, max_length, asn="100"):
    address, length = prefix.split("/")
    binary, family = encode(address, int(length))
    return Vrp(asn=asn, prefix=prefix, max_length=max_length, binary=binary, address_family=family)


def test_more_specific_route_is_candidate():
    assert is_candidate(make_route("10.0.1.0/24"), make_vrp("10.0.0.0/16", 24))


def test_less_specific_route_is_not_candidate():
    # 10.0.0.0/8 starts with the /16's bits but is wider than the VRP
    assert not is_candidate(make_route("10.0.0.0/8"), make_vrp("10.0.0.0/16", 24))


def test_other_family_is_not_candidate():
    assert not is_candidate(make_route("2001:db8::/32"), make_vrp("0.0.0.0/0", 32))


def test_disjoint_route_is_not_candidate():
    assert not is_candidate(make_route("11.0.0.0/24"), make_vrp("10.0.0.0/16", 24))


# ---------------------------------------------------------------------
# Validation passes over a record store
# ---------------------------------------------------------------------

def test_validation_assigns_each_state(store, executor, snapshot):
    load_snapshot(store, executor, snapshot,
                  ["AS100,10.0.0.0/16,24", "AS300,192.0.2.0/24,24"],
                  ["100\t10.0.1.0/24\t10",
                   "100\t10.0.1.128/25\t10",
                   "200\t10.0.2.0/24\t10",
                   "200\t10.0.3.0/25\t10",
                   "300\t192.0.2.0/25\t10",
                   "100\t11.0.0.0/24\t10"])

    report = RouteOriginValidator(store, executor).validate(snapshot)
    routes = routes_by_prefix(store, snapshot)
    ids = vrp_ids(store, snapshot)

    assert routes["10.0.1.0/24"].validity == Validity.VALID
    assert routes["10.0.1.128/25"].validity == Validity.RANGE_LENGTH_EXCEEDED
    assert routes["10.0.2.0/24"].validity == Validity.ASN_MISMATCH
    assert routes["10.0.3.0/25"].validity == Validity.ASN_AND_LENGTH_MISMATCH
    assert routes["192.0.2.0/25"].validity == Validity.FIXED_LENGTH_EXCEEDED

    for prefix in ("10.0.1.0/24", "10.0.1.128/25", "10.0.2.0/24", "10.0.3.0/25"):
        assert routes[prefix].matched_vrp_ids == [ids["100"]]
    assert routes["192.0.2.0/25"].matched_vrp_ids == [ids["300"]]

    assert report.outcomes[ValidationOutcome.MATCHED] == 2


def test_route_outside_every_vrp_is_untouched(store, executor, snapshot):
    load_snapshot(store, executor, snapshot,
                  ["AS100,10.0.0.0/16,24"],
                  ["100\t11.0.0.0/24\t10", "100\t10.0.0.0/8\t10", "100\t2001:db8::/32\t10"])

    validator = RouteOriginValidator(store, executor)
    report = validator.validate(snapshot)

    for route in routes_by_prefix(store, snapshot).values():
        assert route.validity == Validity.UNKNOWN
        assert route.matched_vrp_ids == []
    assert report.outcomes[ValidationOutcome.UNMATCHED] == 1
    assert validator.updates == 0


def test_ipv4_vrp_never_matches_ipv6_routes(store, executor, snapshot):
    load_snapshot(store, executor, snapshot,
                  ["AS100,0.0.0.0/0,32"],
                  ["100\t10.0.0.0/24\t10", "100\t2001:db8::/32\t10"])

    RouteOriginValidator(store, executor).validate(snapshot)
    routes = routes_by_prefix(store, snapshot)

    assert routes["10.0.0.0/24"].validity == Validity.VALID
    assert routes["2001:db8::/32"].validity == Validity.UNKNOWN


@pytest.mark.parametrize("vrp_lines", [
    ["AS200,10.0.0.0/16,24", "AS100,10.0.0.0/8,24"],
    ["AS100,10.0.0.0/8,24", "AS200,10.0.0.0/16,24"],
])
def test_valid_wins_in_any_vrp_order(store, serial_executor, snapshot, vrp_lines):
    load_snapshot(store, serial_executor, snapshot, vrp_lines, ["100\t10.0.1.0/24\t10"])

    RouteOriginValidator(store, serial_executor).validate(snapshot)
    route = routes_by_prefix(store, snapshot)["10.0.1.0/24"]
    ids = vrp_ids(store, snapshot)

    assert route.validity == Validity.VALID
    assert sorted(route.matched_vrp_ids) == sorted(ids.values())


def test_many_vrps_concurrently_keep_every_trail_entry(store, executor, snapshot):
    vrp_lines = [f"AS{asn},10.0.0.0/{length},24"
                 for asn in range(1000, 1010) for length in (8, 12, 16)]
    load_snapshot(store, executor, snapshot, vrp_lines, ["1005\t10.0.1.0/24\t10"])

    RouteOriginValidator(store, executor).validate(snapshot)
    route = routes_by_prefix(store, snapshot)["10.0.1.0/24"]

    assert len(route.matched_vrp_ids) == len(vrp_lines)
    assert len(set(route.matched_vrp_ids)) == len(vrp_lines)
    assert route.validity == Validity.VALID


def test_rerun_resets_trails(store, executor, snapshot):
    load_snapshot(store, executor, snapshot, ["AS100,10.0.0.0/16,24"], ["100\t10.0.1.0/24\t10"])

    validator = RouteOriginValidator(store, executor)
    validator.validate(snapshot)
    validator.validate(snapshot)

    route = routes_by_prefix(store, snapshot)["10.0.1.0/24"]
    assert route.matched_vrp_ids == list(vrp_ids(store, snapshot).values())


def test_rerun_without_reset_accumulates(store, executor, snapshot):
    load_snapshot(store, executor, snapshot, ["AS100,10.0.0.0/16,24"], ["100\t10.0.1.0/24\t10"])

    validator = RouteOriginValidator(store, executor, reset_before_validation=False)
    validator.validate(snapshot)
    validator.validate(snapshot)

    route = routes_by_prefix(store, snapshot)["10.0.1.0/24"]
    assert len(route.matched_vrp_ids) == 2


def test_ipv6_validation(store, executor):
    snapshot = Snapshot("2024-02-01")
    load_snapshot(store, executor, snapshot,
                  ["AS400,2001:db8::/32,48"],
                  ["400\t2001:db8:1::/48\t10", "400\t2001:db8:2::/64\t10", "401\t2001:db8:3::/48\t10"])

    RouteOriginValidator(store, executor).validate(snapshot)
    routes = routes_by_prefix(store, snapshot)

    assert routes["2001:db8:1::/48"].validity == Validity.VALID
    assert routes["2001:db8:2::/64"].validity == Validity.RANGE_LENGTH_EXCEEDED
    assert routes["2001:db8:3::/48"].validity == Validity.ASN_MISMATCH


@pytest.mark.parametrize("vrp_line,route_line,expected", [
    ("AS65001,10.0.0.0/8,8", "65001\t10.0.0.0/8\t10", Validity.VALID),
    ("AS65001,10.0.0.0/8,8", "65001\t10.0.0.0/24\t10", Validity.FIXED_LENGTH_EXCEEDED),
    ("AS65001,10.0.0.0/8,16", "65001\t10.0.0.0/24\t10", Validity.RANGE_LENGTH_EXCEEDED),
    ("AS65001,10.0.0.0/8,16", "65002\t10.0.0.0/16\t10", Validity.ASN_MISMATCH),
    ("AS65001,10.0.0.0/8,16", "65002\t10.0.0.0/24\t10", Validity.ASN_AND_LENGTH_MISMATCH),
])
def test_single_vrp_against_single_route(store, executor, snapshot, vrp_line, route_line, expected):
    load_snapshot(store, executor, snapshot, [vrp_line], [route_line])

    RouteOriginValidator(store, executor).validate(snapshot)
    (route,) = routes_by_prefix(store, snapshot).values()

    assert route.validity == expected
    assert route.matched_vrp_ids == list(vrp_ids(store, snapshot).values())


def test_one_vrp_three_candidates(store, executor, snapshot):
    load_snapshot(store, executor, snapshot,
                  ["AS65001,10.0.0.0/8,16"],
                  ["65001\t10.1.0.0/16\t10", "65002\t10.2.0.0/16\t10", "65002\t10.3.0.0/24\t10"])

    RouteOriginValidator(store, executor).validate(snapshot)
    routes = list(routes_by_prefix(store, snapshot).values())
    (vrp_id,) = vrp_ids(store, snapshot).values()

    assert {route.validity for route in routes} == {
        Validity.VALID, Validity.ASN_MISMATCH, Validity.ASN_AND_LENGTH_MISMATCH
    }
    assert all(route.matched_vrp_ids == [vrp_id] for route in routes)
