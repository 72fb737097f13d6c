import ipaddress
import json
import os

import pytest

from acistore.allocator import (
    AllocationError,
    IPAllocator,
    IPAMConfig,
    load_ipam_config,
)
from acistore.cidr import next_ip
from acistore.diskbackend import DiskStore


@pytest.fixture
def store(tmp_path):
    with DiskStore("mynet", tmp_path) as s:
        yield s


def make(store, **kwargs):
    conf = IPAMConfig(name="mynet", type="static", subnet="10.1.2.0/24", **kwargs)
    return IPAllocator(conf, store)


def test_first_address_follows_network_address(store):
    alloc = make(store, routes=["0.0.0.0/0"])
    conf = alloc.get("c1")
    net = ipaddress.ip_network("10.1.2.0/24")
    assert conf.ip.ip == next_ip(net.network_address)
    assert conf.ip.network == net
    assert conf.routes == [ipaddress.ip_interface("0.0.0.0/0")]
    assert conf.gateway is None


def test_gateway_is_never_allocated(store):
    alloc = make(store, gateway="10.1.2.1")
    conf = alloc.get("c1")
    assert conf.gateway == ipaddress.ip_address("10.1.2.1")
    assert conf.ip.ip != conf.gateway


def test_successive_addresses_are_distinct(store):
    alloc = make(store)
    ips = {alloc.get(f"c{i}").ip.ip for i in range(5)}
    assert len(ips) == 5


def test_exhaustion(tmp_path):
    with DiskStore("small", tmp_path) as s:
        alloc = IPAllocator(IPAMConfig(name="small", subnet="10.0.0.0/30"), s)
        alloc.get("a")
        alloc.get("b")
        with pytest.raises(AllocationError, match="no ip addresses available in network: small"):
            alloc.get("c")


def test_range_start_outside_subnet(store):
    with pytest.raises(ValueError, match="not in network"):
        make(store, range_start="192.168.0.1")


def test_invalid_range_ip(store):
    with pytest.raises(ValueError, match="invalid ip address"):
        make(store, range_end="not-an-ip")


def test_range_start_is_first(store):
    alloc = make(store, range_start="10.1.2.50")
    assert alloc.get("c1").ip.ip == ipaddress.ip_address("10.1.2.50")


def test_get_ptp_pairs_even_gateway_and_next(store):
    conf = make(store).get_ptp("c1")
    assert int(conf.gateway) % 2 == 0
    assert conf.ip.ip == next_ip(conf.gateway)
    assert conf.ip.network.prefixlen == 31


def test_release_frees_container_addresses(store):
    alloc = make(store)
    alloc.get("c1")
    alloc.get("c2")
    alloc.release("c1")
    owners = []
    for name in os.listdir(store.directory):
        with open(os.path.join(store.directory, name)) as fh:
            owners.append(fh.read())
    assert owners == ["c2"]


def test_load_ipam_config_copies_name(tmp_path):
    path = tmp_path / "net.conf"
    path.write_text(json.dumps({
        "name": "mynet",
        "ipam": {"type": "static", "subnet": "10.1.2.0/24", "routes": ["0.0.0.0/0"]},
    }))
    conf = load_ipam_config(path)
    assert conf.name == "mynet"
    assert conf.type == "static"
    assert conf.subnet == "10.1.2.0/24"
    assert conf.routes == ["0.0.0.0/0"]


def test_load_ipam_config_missing_ipam(tmp_path):
    path = tmp_path / "net.conf"
    path.write_text(json.dumps({"name": "mynet"}))
    with pytest.raises(ValueError, match="missing 'ipam' key"):
        load_ipam_config(path)