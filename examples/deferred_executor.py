"""
Deferred queries: record the operations, let an executor run them.
Run: python examples/deferred_executor.py
"""

import asyncio
import os
import sys
# Ensure project root is on sys.path for direct execution
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from eloquent import AsyncCollection, InMemoryExecutor


USERS = [
    {"id": 1, "name": "Alice", "status": "active", "age": 30},
    {"id": 2, "name": "Bob", "status": "inactive", "age": 17},
    {"id": 3, "name": "Carol", "status": "active", "age": 25},
]


async def sql_like_executor(context):
    """Translates where() operations into a fake SQL string instead of running them."""
    clauses = []
    for name, *args in context.operations:
        if name == "where":
            key, operator, value = args if len(args) == 3 else (args[0], "=", args[1])
            clauses.append(f"{key} {operator} {value!r}")
    return "SELECT * FROM users" + (" WHERE " + " AND ".join(clauses) if clauses else "")


async def run():
    users = AsyncCollection(InMemoryExecutor(USERS))
    active = users.where("status", "active")

    print("Plan:", active.sort("age").explain())
    print("Active:", [u["name"] for u in await active])
    print("Youngest active:", (await active.sort("age").first())["name"])
    print("By status:", await users.count_by("status"))

    sql = AsyncCollection(sql_like_executor).where("status", "active").where("age", ">=", 18)
    print("SQL:", await sql)


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
