"""Example: typed access and the DB-API 2.0 module side by side.

Uses the system SQLite library; point TYPEDLITE_NATIVE_LIB at another
build to override it:
    TYPEDLITE_NATIVE_LIB=/path/to/libsqlite3.so python example.py
"""

import logging
import os
import tempfile

import typedlite
from typedlite import dbapi


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # Create a temporary database file for this example.
    db_path = os.path.join(tempfile.gettempdir(), "typedlite_example.db")

    conn = typedlite.connect(db_path, trace_execution=True)

    conn.execute("""
        CREATE TABLE users (
            id    INTEGER PRIMARY KEY,
            name  TEXT NOT NULL,
            email TEXT UNIQUE
        )
    """)

    users = [
        ("Alice", "alice@example.com"),
        ("Bob", "bob@example.com"),
        ("Carol", "carol@example.com"),
    ]

    # All or nothing: a failing insert rolls the whole batch back.
    def insert_all():
        for name, email in users:
            conn.execute("INSERT INTO users (name, email) VALUES (?, ?)", [name, email])
        return conn.last_insert_row_id

    last_id = conn.perform_transaction(insert_all)
    print(f"\nInserted up to id {last_id}")

    print("All users:")
    for row in conn.query("SELECT id, name, email FROM users ORDER BY id"):
        print(f"  id={row['id']}  name={row['name']}  email={row['email']}")

    # A NULL and an exhausted result both read as None; has_row tells them apart.
    result = conn.query("SELECT email FROM users WHERE name = ?", ["Bob"])
    print(f"\nLookup by name: {result.fetch_column('email')}")

    conn.close()

    # The same file through the DB-API module.
    with dbapi.connect(db_path) as db:
        cursor = db.cursor()
        cursor.execute("INSERT INTO users (name, email) VALUES (:name, :email)",
                       {"name": "Dave", "email": "dave@example.com"})
        cursor.execute("SELECT count(*) FROM users")
        print(f"\nTotal users: {cursor.fetchone()[0]}")

        print(f"\nTables: {db.list_tables()}")
        print("Columns:")
        for col in db.get_table_columns("users"):
            print(f"  {col['name']} ({col['type']})"
                  f"{'  PK' if col['primary_key'] else ''}"
                  f"{'  NOT NULL' if col['not_null'] else ''}")

    # Clean up.
    for suffix in ("", "-journal"):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass

    print("\nDone.")


if __name__ == "__main__":
    main()
