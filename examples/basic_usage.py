"""
Collection basic usage examples.
Run: python examples/basic_usage.py
"""

import os
import sys
# Ensure project root is on sys.path for direct execution
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from eloquent import collect


def main():
    products = collect([
        {"id": 1, "name": "Keyboard", "categoria": "perifericos", "price": 45, "stock": 12},
        {"id": 2, "name": "Mouse", "categoria": "perifericos", "price": 20, "stock": 0},
        {"id": 3, "name": "Monitor", "categoria": "pantallas", "price": 180, "stock": 4},
    ])

    # Query filters
    affordable = products.filter({"price": {"$lt": 100}, "stock": {"$gt": 0}})
    print("Affordable and in stock:", affordable.join("name"))
    print("Expensive:", products.where("price", ">=", 100).map(lambda p: p["name"]).to_list())

    # Grouping and aggregates
    for category, group in products.group_by("categoria").items():
        print(f"{category}: {len(group)} product(s), stock value {group.sum(lambda p: p['price'] * p['stock'])}")
    print("Average price:", products.avg("price"))
    print("Names:", products.sort_by_desc("price").join("name", ", ", " and "))

    # In place changes
    products.update({"stock": 0}, {"available": False}).forget("stock")
    print("After update:", products.stringify(indent=2))

    page = products.paginate(1, 2)
    print("Page 1:", page["items"].to_json(), "next:", page["next"])


if __name__ == "__main__":
    main()
