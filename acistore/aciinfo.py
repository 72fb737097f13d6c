"""Records describing the images imported into the store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)
_COLUMNS = "blobkey, appname, importtime, latest"


@dataclass
class ACIInfo:
    """Information about one imported image.

    ``blob_key`` is the image's key in the blob store and the record's
    primary key; ``latest`` marks images fetched without a version label.
    """

    blob_key: str
    app_name: str = ""
    import_time: datetime = _ZERO_TIME
    latest: bool = False


def _from_row(row) -> ACIInfo:
    blob_key, app_name, import_time, latest = row
    return ACIInfo(
        blob_key=blob_key,
        app_name=app_name,
        import_time=datetime.fromisoformat(import_time),
        latest=bool(latest),
    )


def get_aciinfos_with_key_prefix(conn: sqlite3.Connection, prefix: str) -> list[ACIInfo]:
    """Return every record whose blob key starts with the prefix."""
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM aciinfo "
        "WHERE substr(blobkey, 1, length(?1)) = ?1 ORDER BY rowid",
        (prefix,),
    )
    return [_from_row(row) for row in rows]


def get_aciinfos_with_app_name(conn: sqlite3.Connection, app_name: str) -> list[ACIInfo]:
    """Return every record for an app name; empty if there is none."""
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM aciinfo WHERE appname = ? ORDER BY rowid",
        (app_name,),
    )
    return [_from_row(row) for row in rows]


def write_aciinfo(conn: sqlite3.Connection, aciinfo: ACIInfo) -> None:
    """Add the record, replacing any with the same blob key."""
    conn.execute("DELETE FROM aciinfo WHERE blobkey = ?", (aciinfo.blob_key,))
    conn.execute(
        "INSERT INTO aciinfo VALUES (?, ?, ?, ?)",
        (
            aciinfo.blob_key,
            aciinfo.app_name,
            aciinfo.import_time.isoformat(),
            int(aciinfo.latest),
        ),
    )