# simgateway/modules/postgres_client.py

import asyncpg

from simgateway.config import log
from simgateway.core.errors import RecordNotFound, UpstreamError
from simgateway.models.user_models import UserRecord

INSERT_USER_SQL = """
INSERT INTO userlist (client_name, user_id, name, score, historique, rapport, temps)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING *
"""

# One row per session: the given id, else the user's latest session.
# Fields left out of the request keep their stored value.
UPDATE_USER_SQL = """
UPDATE userlist
SET name = COALESCE($3, name),
    score = COALESCE($4, score),
    historique = COALESCE($5, historique),
    rapport = COALESCE($6, rapport),
    temps = COALESCE($7, temps)
WHERE id = (
    SELECT max(id) FROM userlist
    WHERE user_id = $2
      AND client_name IS NOT DISTINCT FROM $1
      AND ($8::integer IS NULL OR id = $8)
)
RETURNING *
"""


def _params(record: UserRecord) -> tuple:
    return (
        record.client_name,
        record.user_id,
        record.user_name,
        record.user_score,
        record.historique,
        record.rapport,
        record.user_time,
    )


async def insert_user_record(pool: asyncpg.Pool, record: UserRecord) -> dict:
    log.info(f"Inserting userlist record for user {record.user_id}")
    try:
        row = await pool.fetchrow(INSERT_USER_SQL, *_params(record))
    except asyncpg.PostgresError as e:
        log.error(f"userlist insert failed: {e}", exc_info=True)
        raise UpstreamError("Database insert failed", details=str(e)) from e
    return dict(row)


async def update_user_record(pool: asyncpg.Pool, record: UserRecord) -> dict:
    log.info(f"Updating userlist record for user {record.user_id}")
    try:
        row = await pool.fetchrow(UPDATE_USER_SQL, *_params(record), record.record_id)
    except asyncpg.PostgresError as e:
        log.error(f"userlist update failed: {e}", exc_info=True)
        raise UpstreamError("Database update failed", details=str(e)) from e
    if row is None:
        raise RecordNotFound("User record not found", details=record.user_id)
    return dict(row)
