from datetime import datetime, timedelta, timezone

from instance_attest import Database, SqliteAttemptStore
from tools.sweep_attempts import main


def test_sweep_tool_removes_expired(tmp_path, capsys):
    path = tmp_path / "attest.db"
    db = Database(path)
    db.init_schema()
    store = SqliteAttemptStore(db)
    now = datetime.now(timezone.utc)
    store.increment("old", now - timedelta(seconds=5), now)
    store.increment("live", now + timedelta(hours=1), now)
    db.close()

    assert main(["--db", str(path)]) == 0
    assert "1 expired auth attempts removed" in capsys.readouterr().out

    db = Database(path)
    assert SqliteAttemptStore(db).list_ids() == ["live"]
    db.close()
