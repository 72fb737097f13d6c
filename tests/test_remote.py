import pytest

from acistore.db import DB, create_schema
from acistore.remote import Remote, get_remote, write_remote

U1 = "https://example.com"
U2 = "https://foo.com"
DATA = "asdf"


@pytest.fixture
def db(tmp_path):
    database = DB(tmp_path / "db")
    database.do(create_schema)
    return database


def test_new_remote(db):
    first = Remote(U1, "")
    first.blob_key = DATA
    db.do(lambda c: write_remote(c, first))

    found = db.do(lambda c: get_remote(c, U1))
    assert found is not None
    assert found.blob_key == DATA

    missing = db.do(lambda c: get_remote(c, U2))
    assert missing is None


def test_write_remote_replaces(db):
    db.do(lambda c: write_remote(c, Remote(U1, sig_url="sig1", etag="e1", blob_key="k1")))
    db.do(lambda c: write_remote(c, Remote(U1, sig_url="sig2", etag="e2", blob_key="k2")))
    found = db.do(lambda c: get_remote(c, U1))
    assert found == Remote(U1, sig_url="sig2", etag="e2", blob_key="k2")
    count = db.do(lambda c: c.execute("SELECT count(*) FROM remote").fetchone()[0])
    assert count == 1