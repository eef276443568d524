# SQLite sink for page titles, written in fixed-size batches
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence, Union

from parser import PageRecord

BATCH_SIZE = 1000

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
    id    INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL UNIQUE
)
"""


class StoreError(RuntimeError):
    pass


class TitleStore:
    """Thin wrapper over one sqlite3 connection holding the pages table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def init_schema(self, reset: bool = False) -> None:
        with self.conn:
            if reset:
                self.conn.execute("DROP TABLE IF EXISTS pages")
            self.conn.execute(_SCHEMA)

    def insert_titles(self, titles: Sequence[str]) -> int:
        """Insert titles in one statement, skipping ones already stored. Returns rows added."""
        if not titles:
            return 0
        placeholders = ", ".join(["(?)"] * len(titles))
        sql = f"INSERT INTO pages (title) VALUES {placeholders} ON CONFLICT DO NOTHING"
        try:
            with self.conn:
                cursor = self.conn.execute(sql, list(titles))
        except sqlite3.Error as exc:
            raise StoreError(f"bulk insert of {len(titles)} titles failed: {exc}") from exc
        return cursor.rowcount

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM pages").fetchone()[0]

    def titles(self) -> List[str]:
        return [row[0] for row in self.conn.execute("SELECT title FROM pages ORDER BY id")]


@contextmanager
def open_store(db_path: Union[str, Path], reset: bool = False) -> Iterator[TitleStore]:
    """Open the database for the length of one run and make sure the table exists."""
    try:
        conn = sqlite3.connect(str(db_path))
    except sqlite3.Error as exc:
        raise StoreError(f"cannot open database {db_path}: {exc}") from exc
    try:
        store = TitleStore(conn)
        store.init_schema(reset=reset)
        yield store
    finally:
        conn.close()


class BatchWriter:
    """Collects records and writes their titles to the store batch_size at a time.

    close() writes whatever is left over; pass flush_partial=False to drop
    the final short batch instead.
    """

    def __init__(self, store: TitleStore, batch_size: int = BATCH_SIZE, flush_partial: bool = True):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.flush_partial = flush_partial
        self.batch: List[PageRecord] = []
        self.flushes = 0
        self.written = 0

    def add(self, record: PageRecord) -> None:
        self.batch.append(record)
        if len(self.batch) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self.batch:
            return
        self.store.insert_titles([record.title for record in self.batch])
        self.flushes += 1
        self.written += len(self.batch)
        self.batch = []

    def close(self) -> None:
        if self.flush_partial:
            self.flush()
        else:
            self.batch = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # Nothing is salvaged from a run that is already failing
        if exc_type is None:
            self.close()
        return False
