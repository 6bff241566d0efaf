"""Issue an API key for an existing user: ``python scripts/create_api_key.py <username> [name]``."""
from __future__ import annotations

import sys

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import select  # noqa: E402

from app import db  # noqa: E402
from app.models import User  # noqa: E402
from app.services.api_keys import issue_key  # noqa: E402


def main(argv: list[str]) -> int:
    if not argv:
        print("usage: create_api_key <username> [key-name]", file=sys.stderr)
        return 2
    username = argv[0]
    name = argv[1] if len(argv) > 1 else f"{username}-key"

    session = db.get_sessionmaker()()
    try:
        user = session.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if user is None:
            print(f"unknown user: {username}", file=sys.stderr)
            return 1
        row, raw = issue_key(session, name=name, user_id=user.id, actor="cli")
        print(f"Key #{row.id} for {username} (operator={user.is_operator}), shown once:")
        print(f"    Authorization: Bearer {raw}")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
