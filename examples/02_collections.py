"""
Example 02: Collections and Subclasses

This example demonstrates discriminator-based subclasses, lazy collections
and filling a collection from the owner's own query.
"""

import sqlite3
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from row_loader import CollectionPersister, ConnectionConfig, Engine, entity, prop
from row_loader.mapping.transform import DistinctRootEntityTransformer
from row_loader.mapping.types import INTEGER, ManyToOneType


@dataclass
class Product:
    id: int = 0
    name: str = ""


@dataclass
class Book(Product):
    pages: int = 0


@dataclass
class Album(Product):
    tracks: int = 0


@dataclass
class Shelf:
    id: int = 0
    label: str = ""
    products: list = field(default_factory=list)


PRODUCT = (
    entity(Product, "products")
    .id("id")
    .property("name")
    .discriminator("kind", value="P")
    .subclass(Book, "B", [prop("pages", INTEGER)])
    .subclass(Album, "A", [prop("tracks", INTEGER)])
    .build()
)

SHELF = entity(Shelf, "shelves").id("id").property("label").collection("products").build()

SHELF_PRODUCTS = CollectionPersister(
    "Shelf.products", "products", ["shelf_id"], ManyToOneType(Product), ["id"], order_by="t.id"
)


def main():
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_path = db_file.name
    db_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE shelves (id INTEGER PRIMARY KEY, label TEXT NOT NULL);
        CREATE TABLE products (
            id INTEGER PRIMARY KEY,
            shelf_id INTEGER,
            kind TEXT NOT NULL,
            name TEXT NOT NULL,
            pages INTEGER,
            tracks INTEGER
        );
        INSERT INTO shelves VALUES (1, 'Living room');
        INSERT INTO shelves VALUES (2, 'Attic');
        INSERT INTO products VALUES (1, 1, 'B', 'Dune', 412, NULL);
        INSERT INTO products VALUES (2, 1, 'A', 'Kind of Blue', NULL, 5);
        INSERT INTO products VALUES (3, 2, 'P', 'Lamp', NULL, NULL);
    """)
    conn.commit()
    conn.close()

    config = ConnectionConfig(driver="sqlite", database=db_path)
    engine = Engine.from_config(config, [PRODUCT, SHELF], [SHELF_PRODUCTS])

    print("=== Lazy Collections ===\n")

    with engine.open_session() as session:
        shelf = session.get(Shelf, 1)
        print(f"Collection loaded yet: {shelf.products.was_initialized}")
        for product in shelf.products:
            print(f"  - {type(product).__name__}: {product.name}")
        print()

    print("=== Collections Fetched With Their Owners ===\n")

    sql = (
        f"select {engine.select_fragment(Product, 'p', '0_')}, "
        f"{engine.select_fragment(Shelf, 's', '1_')}, "
        f"{engine.collection_select_fragment('Shelf.products', 'p', 'c0_')} "
        "from shelves s left join products p on p.shelf_id = s.id order by s.id, p.id"
    )
    query = engine.compile_query(
        sql,
        [Product, Shelf],
        collection_role="Shelf.products",
        collection_owner=1,
        transformer=DistinctRootEntityTransformer(),
    )

    with engine.open_session() as session:
        for shelf in session.list(query):
            names = ", ".join(p.name for p in shelf.products)
            print(f"{shelf.label} (loaded: {shelf.products.was_initialized}): {names}")

    engine.close()
    Path(db_path).unlink()


if __name__ == "__main__":
    main()
