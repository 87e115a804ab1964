"""
Snapshot store — chunked, idempotent, append-only writes.

(machine_id, computed_at) is unique. Rows whose key already exists are skipped
before insert; a concurrent writer that slips in between is caught by the
unique constraint and the chunk is retried row by row. Each chunk commits on
its own, so a crash mid-run leaves only whole chunks behind.
"""
import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.exc import IntegrityError

from minerchecker.config import SNAPSHOT_CHUNK_SIZE
from minerchecker.database import get_session
from minerchecker.models.snapshot import ProfitabilitySnapshot

logger = logging.getLogger('profitability.store')


@dataclass
class StoreResult:
    written: int = 0
    duplicates_skipped: int = 0
    chunks: int = 0


def _key(row):
    return row['machine_id'], row['computed_at']


def _existing_keys(session, rows):
    machine_ids = {r['machine_id'] for r in rows}
    buckets = {r['computed_at'] for r in rows}
    found = (
        session.query(ProfitabilitySnapshot.machine_id, ProfitabilitySnapshot.computed_at)
        .filter(
            ProfitabilitySnapshot.machine_id.in_(machine_ids),
            ProfitabilitySnapshot.computed_at.in_(buckets),
        )
        .all()
    )
    return {(m, c) for m, c in found}


def _key_exists(session, row) -> bool:
    return session.query(
        session.query(ProfitabilitySnapshot.id)
        .filter(
            ProfitabilitySnapshot.machine_id == row['machine_id'],
            ProfitabilitySnapshot.computed_at == row['computed_at'],
        )
        .exists()
    ).scalar()


def _insert_row_by_row(session, rows, result):
    """Insert one row per commit. Only an already-stored key counts as a duplicate."""
    for row in rows:
        session.add(ProfitabilitySnapshot(**row))
        try:
            session.commit()
            result.written += 1
        except IntegrityError:
            session.rollback()
            if not _key_exists(session, row):
                raise
            result.duplicates_skipped += 1


def write_snapshots(rows: List[dict], chunk_size: int = SNAPSHOT_CHUNK_SIZE) -> StoreResult:
    """Persist snapshot rows; duplicates are counted, never raised. Other DB errors propagate."""
    result = StoreResult()
    chunk_size = max(1, int(chunk_size))

    unique, seen = [], set()
    for row in rows:
        k = _key(row)
        if k in seen:
            result.duplicates_skipped += 1
            continue
        seen.add(k)
        unique.append(row)

    for start in range(0, len(unique), chunk_size):
        chunk = unique[start:start + chunk_size]
        result.chunks += 1
        session = get_session()
        try:
            existing = _existing_keys(session, chunk)
            fresh = [r for r in chunk if _key(r) not in existing]
            result.duplicates_skipped += len(chunk) - len(fresh)
            if fresh:
                session.add_all([ProfitabilitySnapshot(**r) for r in fresh])
                try:
                    session.commit()
                    result.written += len(fresh)
                except IntegrityError:
                    session.rollback()
                    logger.warning("Chunk %d hit an integrity error, retrying row by row", result.chunks)
                    _insert_row_by_row(session, fresh, result)
        except Exception:
            session.rollback()
            logger.error("Failed to persist snapshot chunk %d", result.chunks, exc_info=True)
            raise
        finally:
            session.close()

        logger.debug("Flushed snapshot chunk %d (%d rows)", result.chunks, len(chunk))

    logger.info(
        "Snapshots persisted: %d written, %d duplicates skipped, %d chunks",
        result.written, result.duplicates_skipped, result.chunks,
    )
    return result
