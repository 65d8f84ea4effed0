"""
Example 01: Basic Entity Loading

This example demonstrates mapping an entity, loading it by identifier and
through a SQL template, and the identity guarantees of a Session.
"""

import sqlite3
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from row_loader import ConnectionConfig, Engine, LockMode, entity
from row_loader.mapping.types import INTEGER
from row_loader.session.proxy import is_initialized


@dataclass
class User:
    id: int = 0
    name: str = ""
    email: str = ""
    mentor: Optional["User"] = None
    version: int = 0


USER = (
    entity(User, "users")
    .id("id")
    .property("name")
    .property("email")
    .many_to_one("mentor", User)
    .version("version")
    .build()
)


def main():
    # Create a temporary database
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            mentor_id INTEGER,
            version INTEGER NOT NULL DEFAULT 1
        );
        INSERT INTO users VALUES (1, 'Alice', 'alice@example.com', NULL, 1);
        INSERT INTO users VALUES (2, 'Bob', 'bob@example.com', 1, 1);
        INSERT INTO users VALUES (3, 'Charlie', 'charlie@example.com', 2, 1);
    """)
    conn.commit()
    conn.close()

    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, [USER])

    print("=== Basic Entity Loading ===\n")

    with engine.open_session() as session:
        # get: load by identifier, cached in the session afterwards
        bob = session.get(User, 2)
        print(f"get result: {bob.name} <{bob.email}>")
        print(f"Same instance on second get: {session.get(User, 2) is bob}\n")

        # mentor was not in the result set, so it is a lazy proxy
        print(f"Mentor loaded yet: {is_initialized(bob.mentor)}")
        print(f"Mentor name: {bob.mentor.name}")
        print(f"Mentor loaded now: {is_initialized(bob.mentor)}\n")

        # list: run a SQL template; its SELECT list uses the generated aliases
        fragment = engine.select_fragment(User, "u", "0_")
        query = engine.compile_query(
            f"select {fragment} from users u where u.id >= ? order by u.id", [User]
        )
        users = session.list(query, [(1, INTEGER)], first_row=1, max_rows=2)
        print(f"list result ({len(users)} rows):")
        for user in users:
            print(f"  - {user.name} (same instance as before: {user is bob})")
        print()

        # upgrading the lock re-checks the version against the database
        session.get(User, 2, LockMode.UPGRADE)
        print(f"Lock held on Bob: {session.current_lock_mode(bob).name}")

    engine.close()

    # Clean up
    Path(db_path).unlink()


if __name__ == "__main__":
    main()
