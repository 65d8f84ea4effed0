"""
Example 03: Async Support

This example demonstrates loading entities with AsyncEngine. References
that were not part of a result set must be initialized explicitly.
"""

import asyncio
import sqlite3
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from row_loader import AsyncEngine, ConnectionConfig, entity
from row_loader.mapping.types import INTEGER


@dataclass
class Category:
    id: int = 0
    name: str = ""
    parent: Optional["Category"] = None


CATEGORY = (
    entity(Category, "categories").id("id").property("name").many_to_one("parent", Category).build()
)


async def main():
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE categories (id INTEGER PRIMARY KEY, name TEXT NOT NULL, parent_id INTEGER);
        INSERT INTO categories VALUES (1, 'Books', NULL);
        INSERT INTO categories VALUES (2, 'Fiction', 1);
        INSERT INTO categories VALUES (3, 'Poetry', 1);
    """)
    conn.commit()
    conn.close()

    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = AsyncEngine.from_config(config, [CATEGORY])

    print("=== Async Loading ===\n")

    async with engine.open_session() as session:
        fiction = await session.get(Category, 2)
        print(f"get result: {fiction.name}")

        parent = await session.initialize(fiction.parent)
        print(f"Parent: {parent.name}\n")

        fragment = engine.select_fragment(Category, "c", "0_")
        query = engine.compile_query(
            f"select {fragment} from categories c where c.parent_id = ? order by c.id", [Category]
        )
        children = await session.list(query, [(1, INTEGER)])
        print(f"list result ({len(children)} rows):")
        for child in children:
            print(f"  - {child.name} (parent is the loaded instance: {child.parent is parent})")

    await engine.close()
    Path(db_path).unlink()


if __name__ == "__main__":
    asyncio.run(main())
