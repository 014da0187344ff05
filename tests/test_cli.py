import asyncio

import pytest

from app import cli
from app.auth import ApiKeyAuthenticator
from core.context import AUTH_METHOD_API_KEY
from core.models import ApiKey


@pytest.fixture
def cli_db(server_db, monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)
    return server_db


def test_issue_key_prints_a_working_key(cli_db, capsys):
    assert cli.issue_key_main(["user-42", "--name", "laptop"]) == 0

    out, err = capsys.readouterr()
    raw_key = out.strip()
    assert raw_key.startswith("rb_")
    assert raw_key not in err

    result = asyncio.run(ApiKeyAuthenticator(cli_db).authenticate(raw_key))
    assert result.owner_id == "user-42"
    assert result.method == AUTH_METHOD_API_KEY

    db = cli_db()
    try:
        stored = db.query(ApiKey).one()
    finally:
        db.close()
    assert stored.name == "laptop"
    assert stored.key_hash != raw_key


def test_issue_key_rejects_blank_user(cli_db, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.issue_key_main(["   "])

    assert excinfo.value.code == 2
    assert "user_id is required" in capsys.readouterr().err
