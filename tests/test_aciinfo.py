from datetime import datetime, timezone

import pytest

from acistore.aciinfo import (
    ACIInfo,
    get_aciinfos_with_app_name,
    get_aciinfos_with_key_prefix,
    write_aciinfo,
)
from acistore.db import DB, create_schema


@pytest.fixture
def db(tmp_path):
    database = DB(tmp_path / "db")
    database.do(create_schema)
    return database


def test_write_aciinfo(db):
    info = ACIInfo(blob_key="key01", app_name="name01")

    def write_twice(conn):
        write_aciinfo(conn, info)
        # a second write overwrites the first
        write_aciinfo(conn, info)

    db.do(write_twice)
    infos = db.do(lambda c: get_aciinfos_with_app_name(c, "name01"))
    assert len(infos) == 1

    db.do(lambda c: write_aciinfo(c, ACIInfo(blob_key="key02", app_name="name01")))
    infos = db.do(lambda c: get_aciinfos_with_app_name(c, "name01"))
    assert len(infos) == 2
    assert [i.blob_key for i in infos] == ["key01", "key02"]


def test_missing_app_name(db):
    assert db.do(lambda c: get_aciinfos_with_app_name(c, "nothing")) == []


def test_fields_round_trip(db):
    when = datetime(2015, 3, 1, 12, 30, tzinfo=timezone.utc)
    info = ACIInfo(blob_key="sha512-aa", app_name="example.com/app",
                   import_time=when, latest=True)
    db.do(lambda c: write_aciinfo(c, info))
    [back] = db.do(lambda c: get_aciinfos_with_app_name(c, "example.com/app"))
    assert back == info


def test_default_import_time_round_trips(db):
    info = ACIInfo(blob_key="key01", app_name="name01")
    db.do(lambda c: write_aciinfo(c, info))
    [back] = db.do(lambda c: get_aciinfos_with_key_prefix(c, "key01"))
    assert back == info
    assert back.latest is False


def test_key_prefix(db):
    def fill(conn):
        for key in ("sha512-123", "sha512-abc", "sha512-abd", "other"):
            write_aciinfo(conn, ACIInfo(blob_key=key, app_name="example.com/app"))

    db.do(fill)
    found = db.do(lambda c: get_aciinfos_with_key_prefix(c, "sha512-ab"))
    assert sorted(i.blob_key for i in found) == ["sha512-abc", "sha512-abd"]
    found = db.do(lambda c: get_aciinfos_with_key_prefix(c, "sha512-1"))
    assert [i.blob_key for i in found] == ["sha512-123"]
    assert db.do(lambda c: get_aciinfos_with_key_prefix(c, "sha512-f")) == []