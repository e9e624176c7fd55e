"""Remove expired auth attempt counters from the attestation database.

Meant to be run from a scheduler (cron, systemd timer) when the service's
/tidy endpoint is not used.
"""

import argparse
import sqlite3
import sys

from instance_attest.config import DB_PATH, LOG_JSON, LOG_LEVEL
from instance_attest.counter import ReplayCounter, SqliteAttemptStore
from instance_attest.db import Database
from instance_attest.errors import StorageError
from instance_attest.logging_config import configure_logging


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("--db", default=DB_PATH, help="path to the SQLite database")
    args = ap.parse_args(argv)

    configure_logging(LOG_LEVEL, json_format=LOG_JSON)
    db = Database(args.db)
    try:
        db.init_schema()
        removed = ReplayCounter(SqliteAttemptStore(db)).sweep()
    except (StorageError, sqlite3.Error) as e:
        print(f"sweep failed: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"{removed} expired auth attempts removed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
