from __future__ import annotations

import copy
from typing import Any, Dict, List

from .models import IndexDefinition
from .store import InMemoryDocumentStore


SEED_BOOKS: List[Dict[str, Any]] = [
    {
        "title": "Dune",
        "author": "Frank Herbert",
        "genre": "Science Fiction",
        "published_year": 1965,
        "price": 15.99,
        "in_stock": True,
        "pages": 412,
        "publisher": "Chilton Books",
    },
    {
        "title": "The Name of the Wind",
        "author": "Patrick Rothfuss",
        "genre": "Fantasy",
        "published_year": 2007,
        "price": 13.50,
        "in_stock": True,
        "pages": 662,
        "publisher": "DAW Books",
    },
    {
        "title": "The Bell Jar",
        "author": "Sylvia Plath",
        "genre": "Fiction",
        "published_year": 1963,
        "price": 10.99,
        "in_stock": False,
        "pages": 294,
        "publisher": "Heinemann",
    },
    {
        "title": "Neuromancer",
        "author": "William Gibson",
        "genre": "Science Fiction",
        "published_year": 1984,
        "price": 12.75,
        "in_stock": True,
        "pages": 271,
        "publisher": "Ace Books",
    },
    {
        "title": "The Handmaid's Tale",
        "author": "Margaret Atwood",
        "genre": "Dystopian",
        "published_year": 1985,
        "price": 11.99,
        "in_stock": True,
        "pages": 311,
        "publisher": "McClelland & Stewart",
    },
    {
        "title": "Good Omens",
        "author": "Neil Gaiman, Terry Pratchett",
        "genre": "Fantasy",
        "published_year": 1990,
        "price": 14.25,
        "in_stock": True,
        "pages": 432,
        "publisher": "Gollancz",
    },
    {
        "title": "The Road",
        "author": "Cormac McCarthy",
        "genre": "Post-Apocalyptic",
        "published_year": 2006,
        "price": 9.99,
        "in_stock": False,
        "pages": 287,
        "publisher": "Knopf",
    },
    {
        "title": "Sapiens: A Brief History of Humankind",
        "author": "Yuval Noah Harari",
        "genre": "Non-Fiction",
        "published_year": 2011,
        "price": 18.99,
        "in_stock": True,
        "pages": 443,
        "publisher": "Harvill Secker",
    },
    {
        "title": "The Martian",
        "author": "Andy Weir",
        "genre": "Science Fiction",
        "published_year": 2014,
        "price": 12.99,
        "in_stock": True,
        "pages": 369,
        "publisher": "Crown Publishing",
    },
    {
        "title": "Circe",
        "author": "Madeline Miller",
        "genre": "Fantasy",
        "published_year": 2018,
        "price": 16.50,
        "in_stock": True,
        "pages": 393,
        "publisher": "Little, Brown and Company",
    },
]


def seed_books() -> List[Dict[str, Any]]:
    return copy.deepcopy(SEED_BOOKS)


def seed_store(store: InMemoryDocumentStore) -> int:
    """Drop the collection and insert the ten seed books."""
    store.drop()
    return store.insert(seed_books())


def default_indexes() -> List[IndexDefinition]:
    """The title index and the author/year compound index."""
    return [
        IndexDefinition.from_key_spec({"title": 1}),
        IndexDefinition.from_key_spec({"author": 1, "published_year": 1}),
    ]


def default_pipelines() -> Dict[str, List[Dict[str, Any]]]:
    """
    Named aggregation pipelines over the book collection.

    ``avg_price_by_genre`` and ``books_by_decade`` end with a sort stage;
    group output alone has no defined order.
    """
    avg_price_by_genre = [
        {"$group": {"_id": "$genre", "averagePrice": {"$avg": "$price"}, "bookCount": {"$sum": 1}}},
        {"$project": {"genre": "$_id", "averagePrice": {"$round": ["$averagePrice", 2]}, "bookCount": 1, "_id": 0}},
        {"$sort": {"averagePrice": -1}},
    ]

    top_author = [
        {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
        {"$sort": {"bookCount": -1}},
        {"$limit": 1},
        {"$project": {"author": "$_id", "bookCount": 1, "_id": 0}},
    ]

    books_by_decade = [
        {"$addFields": {"decade": {"$floor": {"$divide": ["$published_year", 10]}}}},
        {
            "$group": {
                "_id": "$decade",
                "bookCount": {"$sum": 1},
                "books": {"$push": {"title": "$title", "year": "$published_year"}},
            }
        },
        {
            "$project": {
                "decade": {"$concat": [{"$toString": {"$multiply": ["$_id", 10]}}, "s"]},
                "bookCount": 1,
                "books": 1,
                "_id": 0,
            }
        },
        {"$sort": {"decade": 1}},
    ]

    return {
        "avg_price_by_genre": avg_price_by_genre,
        "top_author": top_author,
        "books_by_decade": books_by_decade,
    }
