"""Test configuration and fixtures."""

import gzip
import os
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from rpki_dash.database.core import RecordStore
from rpki_dash.database.snapshots import Snapshot
from rpki_dash.utils.config import (
    ConcurrencyConfig, FeedConfig, RPKIDashConfig, ReportConfig, StoreConfig,
    reset_config_manager,
)
from rpki_dash.utils.parallel import BoundedExecutor

SNAPSHOT_DATE = "2024-01-31"

VRP_EXPORT = """\
ASN,IP Prefix,Max Length,Trust Anchor
AS100,10.0.0.0/16,24,ripe
AS300,192.0.2.0/24,24,arin
AS400,2001:db8::/32,48,ripe
bogus line
"""

ROUTES_V4 = """\
% This file is made available by RIPE NCC's Routing Information Service
% Format: origin<TAB>prefix<TAB>seen-by-peers

100\t10.0.1.0/24\t300
100\t10.0.1.128/25\t300
200\t10.0.2.0/24\t300
200\t10.0.3.0/25\t300
300\t192.0.2.0/25\t300
500\t100.64.0.0/16\t300
600\t10.0.9.0/24\t4
"""

ROUTES_V6 = """\
% IPv6 dump
400\t2001:db8:1::/48\t100
400\t2001:db8:2::/64\t100
700\t2001:200::/32\t100
"""

REGISTRY_V4 = """\
Prefix,Designation,Date,WHOIS,RDAP,Status [1],Note
010/8,Administered by APNIC,1995-11,whois.apnic.net,https://rdap.apnic.net/,LEGACY,
100/8,ARIN,2010-11,whois.arin.net,https://rdap.arin.net/registry,ALLOCATED,
192/8,Administered by ARIN,1993-05,whois.arin.net,https://rdap.arin.net/registry,LEGACY,
224/8,Multicast,1981-09,,,RESERVED,
"""

REGISTRY_V6 = """\
Prefix,Designation,Date,WHOIS,RDAP,Status,Note
2001:0200::/23,APNIC,1999-07-01,whois.apnic.net,https://rdap.apnic.net/,ALLOCATED,
2001:0600::/23,RIPE NCC,1999-07-01,whois.ripe.net,https://rdap.db.ripe.net/,ALLOCATED,
2001:0c00::/23,APNIC,1999-05-14,whois.apnic.net,https://rdap.apnic.net/,ALLOCATED,
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from RPKI_DASH_* variables and the cached configuration"""
    for name in list(os.environ):
        if name.startswith("RPKI_DASH_"):
            monkeypatch.delenv(name, raising=False)
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def store(tmp_path):
    record_store = RecordStore(tmp_path / "rpki_dash.db")
    yield record_store
    record_store.close()


@pytest.fixture
def executor():
    bounded = BoundedExecutor(max_workers=4)
    yield bounded
    bounded.shutdown()


@pytest.fixture
def serial_executor():
    """Single worker executor: work items run in submission order"""
    bounded = BoundedExecutor(max_workers=1)
    yield bounded
    bounded.shutdown()


@pytest.fixture
def snapshot():
    return Snapshot(SNAPSHOT_DATE)


@pytest.fixture
def feed_files(tmp_path):
    """Local copies of every feed; the IPv4 route dump is gzipped like the real one"""
    feeds = tmp_path / "feeds"
    feeds.mkdir()

    (feeds / "export.csv").write_text(VRP_EXPORT)
    (feeds / "riswhoisdump.IPv4.gz").write_bytes(gzip.compress(ROUTES_V4.encode()))
    (feeds / "riswhoisdump.IPv6").write_text(ROUTES_V6)
    (feeds / "ipv4-address-space.csv").write_text(REGISTRY_V4)
    (feeds / "ipv6-unicast-address-assignments.csv").write_text(REGISTRY_V6)

    return {
        "vrp_url": str(feeds / "export.csv"),
        "routes_v4_url": str(feeds / "riswhoisdump.IPv4.gz"),
        "routes_v6_url": str(feeds / "riswhoisdump.IPv6"),
        "registry_v4_url": str(feeds / "ipv4-address-space.csv"),
        "registry_v6_url": str(feeds / "ipv6-unicast-address-assignments.csv"),
    }


@pytest.fixture
def pipeline_config(tmp_path, feed_files):
    return RPKIDashConfig(
        feeds=FeedConfig(**feed_files),
        store=StoreConfig(db_path=str(tmp_path / "pipeline.db")),
        concurrency=ConcurrencyConfig(max_workers=4),
        reports=ReportConfig(output_dir=str(tmp_path / "reports")),
    )
