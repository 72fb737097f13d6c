import ipaddress
import json
import os

import pytest

from acistore.netconf import (
    DEFAULT_NET_PATH,
    IfConfig,
    NetConf,
    list_files,
    load_net,
    load_nets,
    load_user_nets,
    print_if_config,
)
from acistore.paths import stage1_rootfs_path


def _save(path, doc):
    path.write_text(json.dumps(doc))
    return str(path)


def test_net(tmp_path):
    doc = {"name": "mynet", "type": "veth",
           "ipam": {"type": "static", "subnet": "10.1.2.0/24"}}
    fn = _save(tmp_path / "net", doc)
    actual = load_net(fn)
    assert actual.filename == fn
    assert actual.name == "mynet"
    assert actual.type == "veth"
    assert actual.ipam_type == "static"
    assert actual.raw["ipam"]["subnet"] == "10.1.2.0/24"


def test_net_embedded(tmp_path):
    doc = {"name": "mynet", "type": "veth", "bridge": "rkt1", "mtu": 1400,
           "ipam": {"type": "static", "subnet": "10.1.2.0/24"}}
    fn = _save(tmp_path / "net", doc)
    actual = load_net(fn)
    assert actual.filename == fn
    assert actual.name == "mynet"
    assert actual.raw["bridge"] == "rkt1"
    assert actual.raw["mtu"] == 1400


def test_net_round_trip(tmp_path):
    conf = NetConf(name="mynet", type="veth", ipam_type="static")
    fn = _save(tmp_path / "net", conf.to_dict())
    loaded = load_net(fn)
    assert (loaded.name, loaded.type, loaded.ipam_type) == ("mynet", "veth", "static")
    assert loaded.to_dict() == conf.to_dict()


def test_load_net_rejects_non_object(tmp_path):
    fn = _save(tmp_path / "net", ["not", "an", "object"])
    with pytest.raises(ValueError):
        load_net(fn)


def test_load_net_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_net(tmp_path / "absent")


def test_if_config_round_trip():
    conf = IfConfig(ip=ipaddress.ip_address("10.1.2.3"))
    parsed = IfConfig.from_json(conf.to_json())
    assert parsed == conf
    assert parsed.ip6 is None


def test_print_if_config(capsys):
    print_if_config(IfConfig(ip=ipaddress.ip_address("10.1.2.3")))
    out = capsys.readouterr().out
    assert json.loads(out) == {"ip": "10.1.2.3"}
    assert "\n    " in out


def test_list_files(tmp_path):
    (tmp_path / "b.conf").write_text("{}")
    (tmp_path / "a.conf").write_text("{}")
    (tmp_path / "sub").mkdir()
    assert list_files(tmp_path) == ["a.conf", "b.conf"]
    assert list_files(tmp_path / "missing") == []


def test_load_user_nets_first_wins(tmp_path):
    _save(tmp_path / "10-a.conf", {"name": "a", "type": "veth"})
    _save(tmp_path / "20-a.conf", {"name": "a", "type": "bridge"})
    _save(tmp_path / "30-b.conf", {"name": "b", "type": "macvlan"})
    nets = load_user_nets(tmp_path)
    assert [(n.name, n.type) for n in nets] == [("a", "veth"), ("b", "macvlan")]


def test_load_user_nets_bad_file(tmp_path):
    (tmp_path / "bad.conf").write_text("{not json")
    with pytest.raises(ValueError, match="error loading"):
        load_user_nets(tmp_path)


def test_load_nets_adds_stage1_default(tmp_path):
    user_dir = tmp_path / "net.d"
    user_dir.mkdir()
    _save(user_dir / "10-a.conf", {"name": "a", "type": "veth"})
    root = tmp_path / "pod"
    default_path = os.path.join(stage1_rootfs_path(str(root)), DEFAULT_NET_PATH)
    os.makedirs(os.path.dirname(default_path))
    with open(default_path, "w") as fh:
        json.dump({"name": "default", "type": "veth"}, fh)
    nets = load_nets(user_dir, root)
    assert [n.name for n in nets] == ["a", "default"]
    assert nets[-1].filename == default_path


def test_load_nets_user_default_overrides(tmp_path):
    _save(tmp_path / "10-default.conf", {"name": "default", "type": "bridge"})
    nets = load_nets(tmp_path, tmp_path / "nonexistent-root")
    assert [(n.name, n.type) for n in nets] == [("default", "bridge")]


def test_load_nets_missing_default(tmp_path):
    with pytest.raises(ValueError, match="error loading net"):
        load_nets(tmp_path / "none", tmp_path / "root")