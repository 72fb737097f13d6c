import ipaddress
import os

import pytest

from acistore.diskbackend import DiskStore


@pytest.fixture
def store(tmp_path):
    with DiskStore("mynet", tmp_path) as s:
        yield s


def test_reserve_creates_file_with_owner(store):
    assert store.reserve("cont1", ipaddress.ip_address("10.0.0.5")) is True
    with open(os.path.join(store.directory, "10.0.0.5")) as fh:
        assert fh.read() == "cont1"


def test_reserve_twice_is_refused(store):
    assert store.reserve("cont1", "10.0.0.5") is True
    assert store.reserve("cont2", "10.0.0.5") is False


def test_release_frees_address(store):
    store.reserve("cont1", "10.0.0.5")
    store.release("10.0.0.5")
    assert store.reserve("cont2", "10.0.0.5") is True


def test_release_missing_raises(store):
    with pytest.raises(FileNotFoundError):
        store.release("10.0.0.9")


def test_release_by_container_id_only_removes_owned(store):
    store.reserve("cont1", "10.0.0.5")
    store.reserve("cont1", "10.0.0.6")
    store.reserve("cont2", "10.0.0.7")
    store.release_by_container_id("cont1")
    assert sorted(os.listdir(store.directory)) == ["10.0.0.7"]


def test_lock_and_unlock(store):
    store.lock()
    assert store._lock.is_locked
    store.unlock()
    assert not store._lock.is_locked


def test_directory_is_under_data_dir(tmp_path):
    s = DiskStore("other", tmp_path)
    assert s.directory == os.path.join(str(tmp_path), "other")
    assert os.path.isdir(s.directory)
    s.close()