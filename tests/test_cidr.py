import ipaddress

import pytest

from acistore.cidr import network, next_ip, parse_cidr, prev_ip


def test_parse_cidr_keeps_host_address():
    iface = parse_cidr("10.1.2.3/24")
    assert str(iface) == "10.1.2.3/24"
    assert iface.ip == ipaddress.ip_address("10.1.2.3")


def test_network_masks_host_bits():
    assert network(parse_cidr("10.1.2.3/24")) == ipaddress.ip_network("10.1.2.0/24")
    assert network("10.1.2.3/24") == network(parse_cidr("10.1.2.3/24"))


@pytest.mark.parametrize("text", ["10.1.2.3", "10.1.2.3/33", "bogus/24",
                                  "10.1.2.3/255.255.255.0", "10.1.2.3/"])
def test_parse_cidr_errors(text):
    with pytest.raises(ValueError):
        parse_cidr(text)


def test_next_ip_crosses_octet():
    assert next_ip("10.0.0.255") == ipaddress.ip_address("10.0.1.0")


@pytest.mark.parametrize("ip", ["10.1.2.3", "192.168.0.0", "fd00::1", "fd00::ffff"])
def test_next_prev_round_trip(ip):
    address = ipaddress.ip_address(ip)
    assert prev_ip(next_ip(address)) == address
    assert next_ip(prev_ip(address)) == address
    assert next_ip(address) > address > prev_ip(address)


def test_overflow_errors():
    with pytest.raises(ValueError):
        next_ip("255.255.255.255")
    with pytest.raises(ValueError):
        prev_ip("0.0.0.0")