"""
Operator commands for RecallBricks.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from app.auth import issue_api_key
from core.db import DB, init_db
from core.errors import ValidationIssue
from core.validators import validate_optional_text, validate_required_text

MAX_KEY_NAME_LENGTH = 255
MAX_USER_ID_LENGTH = 100


def issue_key_main(argv: Optional[Sequence[str]] = None) -> int:
    """Issue an API key for a user and print the raw key once."""
    parser = argparse.ArgumentParser(
        prog="recallbricks-issue-key",
        description="Create an API key for a RecallBricks user. The key is printed once and stored hashed.",
    )
    parser.add_argument("user_id", help="owner id the key authenticates as")
    parser.add_argument("--name", help="label shown when listing keys, e.g. 'laptop'")
    args = parser.parse_args(argv)

    try:
        validate_required_text(args.user_id, "user_id", MAX_USER_ID_LENGTH)
        validate_optional_text(args.name, "name", MAX_KEY_NAME_LENGTH)
    except ValidationIssue as exc:
        parser.error(str(exc))

    init_db()
    db = DB.SessionLocal()
    try:
        raw_key = issue_api_key(db, args.user_id.strip(), name=args.name)
    finally:
        db.close()

    print(raw_key)
    print(f"Issued {raw_key[:10]}... for {args.user_id.strip()}; it will not be shown again.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(issue_key_main())
