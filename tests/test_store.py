"""Tests for the SQLite record store."""

import pytest

from rpki_dash.database import RecordStore, SchemaError, Snapshot, StoreError, snapshot_date
from rpki_dash.models import Validity
from rpki_dash.processors.prefix_codec import encode


def route_document(asn, prefix):
    address, length = prefix.split("/")
    binary, family = encode(address)
    return {
        'asn': asn,
        'prefix': prefix,
        'address_family': family,
        'binary': binary,
        'prefix_length': int(length),
        'validity': Validity.UNKNOWN,
        'matched_vrp_ids': [],
        'rir': '',
    }


@pytest.fixture
def routes(store):
    store.create_collection("2024-01-31-routes", "routes")
    for asn, prefix in (("1", "10.0.0.0/24"), ("2", "10.0.1.0/24"),
                        ("3", "11.0.0.0/24"), ("4", "2001:db8::/32")):
        store.insert("2024-01-31-routes", route_document(asn, prefix))
    return "2024-01-31-routes"


def test_snapshot_names():
    snapshot = Snapshot("2024-01-31")
    assert snapshot.routes == "2024-01-31-routes"
    assert snapshot.vrp == "2024-01-31-vrp"
    assert Snapshot.for_date().date == snapshot_date()


def test_insert_and_get(store, routes):
    document = store.get(routes, 1)

    assert document['id'] == 1
    assert document['asn'] == "1"
    assert document['validity'] == -1
    assert document['matched_vrp_ids'] == []


def test_get_missing_record(store, routes):
    assert store.get(routes, 999) is None


def test_find_by_prefix_is_a_range_scan(store, routes):
    network, _ = encode("10.0.0.0", 8)
    found = store.find_by_prefix(routes, network)

    assert sorted(doc['asn'] for doc in found) == ["1", "2"]


def test_find_by_prefix_filters_family(store, routes):
    assert {doc['asn'] for doc in store.find_by_prefix(routes, "")} == {"1", "2", "3", "4"}
    assert {doc['asn'] for doc in store.find_by_prefix(routes, "", address_family=6)} == {"4"}


def test_update_fields_round_trips_lists(store, routes):
    assert store.update_fields(routes, 2, {'validity': Validity.VALID, 'matched_vrp_ids': [7, 9]}) == 1

    document = store.get(routes, 2)
    assert document['validity'] == 0
    assert document['matched_vrp_ids'] == [7, 9]


def test_update_matching_by_binary_prefix(store, routes):
    network, _ = encode("10.0.0.0", 8)
    assert store.update_matching(routes, {'rir': 'apnic'}, binary_prefix=network, address_family=4) == 2
    assert store.count_by(routes, 'rir') == {'apnic': 2, '': 2}


def test_update_matching_by_text_prefix(store, routes):
    assert store.update_matching(routes, {'rir': 'arin'}, text_prefix="1", address_family=4) == 3
    assert store.get(routes, 4)['rir'] == ''


def test_update_matching_without_filters_touches_everything(store, routes):
    assert store.update_matching(routes, {'validity': Validity.UNKNOWN, 'matched_vrp_ids': []}) == 4


def test_count_and_group(store, routes):
    assert store.count(routes) == 4
    assert store.count_by(routes, 'address_family') == {4: 3, 6: 1}


def test_find_all_in_id_order(store, routes):
    assert [doc['id'] for doc in store.find_all(routes)] == [1, 2, 3, 4]


def test_collection_catalog(store, routes):
    store.create_collection("2024-01-31-vrp", "vrp")

    assert store.collection_exists(routes)
    assert store.list_collections() == ["2024-01-31-routes", "2024-01-31-vrp"]
    assert store.list_collections("vrp") == ["2024-01-31-vrp"]

    store.drop_collection("2024-01-31-vrp")
    assert not store.collection_exists("2024-01-31-vrp")
    store.drop_collection("2024-01-31-vrp")


def test_create_collection_is_idempotent(store, routes):
    store.create_collection(routes, "routes")
    assert store.count(routes) == 4


def test_collection_kind_conflict(store, routes):
    with pytest.raises(SchemaError):
        store.create_collection(routes, "vrp")


def test_invalid_collection_names(store):
    with pytest.raises(SchemaError):
        store.create_collection('routes"; DROP TABLE collections; --', "routes")
    with pytest.raises(SchemaError):
        store.create_collection("2024-01-31-routes", "prefixes")


def test_unknown_collection(store):
    with pytest.raises(StoreError):
        store.count("2099-01-01-routes")


def test_unknown_field(store, routes):
    with pytest.raises(StoreError):
        store.update_fields(routes, 1, {'colour': 'blue'})
    with pytest.raises(StoreError):
        store.ensure_index(routes, 'colour')


def test_ensure_index(store, routes):
    store.ensure_index(routes, "binary", "prefix")
    store.ensure_index(routes, "binary", "prefix")

    conn = store._get_connection()
    names = [row['name'] for row in conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ?", (routes,)
    )]
    assert "idx_2024_01_31_routes_binary_prefix" in names


def test_store_errors_are_fatal(store, routes):
    with pytest.raises(StoreError) as excinfo:
        store.insert(routes, {'asn': None, 'prefix': '10.0.0.0/8'})
    assert excinfo.value.severity == "fatal"


def test_concurrent_inserts(store, executor, routes):
    def insert(i):
        store.insert(routes, route_document(str(i), f"172.16.{i % 256}.0/24"))

    executor.run_stage(range(200), insert)
    assert store.count(routes) == 204


def test_reopen_keeps_data(tmp_path):
    path = tmp_path / "reopen.db"
    with RecordStore(path) as first:
        first.create_collection("2024-01-31-vrp", "vrp")
        first.insert("2024-01-31-vrp", {'asn': '1', 'prefix': '10.0.0.0/8', 'max_length': 8,
                                        'binary': '00001010', 'address_family': 4})

    with RecordStore(path) as second:
        assert second.list_collections() == ["2024-01-31-vrp"]
        assert second.count("2024-01-31-vrp") == 1
