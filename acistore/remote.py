"""Records of remote image locations and the blobs fetched from them."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass


@dataclass
class Remote:
    """A remote image URL, its signature URL and cached fetch details.

    ``blob_key`` is the key in the blob store under which the image was saved.
    """

    aci_url: str
    sig_url: str = ""
    etag: str = ""
    blob_key: str = ""


def get_remote(conn: sqlite3.Connection, aci_url: str) -> Remote | None:
    """Return the remote for the URL, or None if there is none."""
    row = conn.execute(
        "SELECT sigurl, etag, blobkey FROM remote WHERE aciurl = ?",
        (aci_url,),
    ).fetchone()
    if row is None:
        return None
    sig_url, etag, blob_key = row
    return Remote(aci_url=aci_url, sig_url=sig_url, etag=etag, blob_key=blob_key)


def write_remote(conn: sqlite3.Connection, remote: Remote) -> None:
    """Add the remote, replacing any with the same URL."""
    conn.execute("DELETE FROM remote WHERE aciurl = ?", (remote.aci_url,))
    conn.execute(
        "INSERT INTO remote VALUES (?, ?, ?, ?)",
        (remote.aci_url, remote.sig_url, remote.etag, remote.blob_key),
    )