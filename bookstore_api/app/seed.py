"""
Seed script — populates the database with sample users, books and reviews for demo.
Run: python -m app.seed
"""

from __future__ import annotations

import asyncio
import random
from datetime import date

from fastapi import BackgroundTasks
from sqlalchemy import select

from app.database import Base, async_session, engine
from app.models.user import User, UserRole
from app.schemas.book import BookCreate
from app.schemas.user import UserRegister
from app.services.accounts import AccountService
from app.services.activity import activity_recorder
from app.services.catalog import CatalogService

SAMPLE_BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "category": "Classic",
        "description": "A story of the mysteriously wealthy Jay Gatsby and his love for Daisy Buchanan.",
        "isbn": "978-0743273565",
        "price": 10.99,
        "published_date": date(1925, 4, 10),
        "page_count": 180,
        "tags": ["classic", "fiction"],
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "category": "Dystopian",
        "description": "A dystopian masterpiece about totalitarianism.",
        "isbn": "978-0451524935",
        "price": 9.99,
        "published_date": date(1949, 6, 8),
        "page_count": 328,
        "tags": ["fiction", "dystopian", "classic"],
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "category": "Romance",
        "description": "The turbulent relationship between Elizabeth Bennet and Mr. Darcy.",
        "isbn": "978-0141439518",
        "price": 8.5,
        "published_date": date(1813, 1, 28),
        "page_count": 432,
        "tags": ["classic", "romance"],
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "category": "Fantasy",
        "description": "Bilbo Baggins embarks on an unexpected journey.",
        "isbn": "978-0547928227",
        "price": 14.99,
        "published_date": date(1937, 9, 21),
        "page_count": 310,
        "tags": ["fantasy", "adventure"],
    },
    {
        "title": "Dune",
        "author": "Frank Herbert",
        "category": "Science Fiction",
        "description": "Set in the distant future amidst interstellar politics.",
        "isbn": "978-0441013593",
        "price": 18.0,
        "published_date": date(1965, 8, 1),
        "page_count": 688,
        "tags": ["sci-fi", "classic"],
    },
    {
        "title": "Foundation",
        "author": "Isaac Asimov",
        "category": "Science Fiction",
        "description": "The collapse of a Galactic Empire and the birth of a new society.",
        "isbn": "978-0553293357",
        "price": 11.25,
        "published_date": date(1951, 5, 1),
        "page_count": 296,
        "tags": ["sci-fi"],
    },
    {
        "title": "Gone Girl",
        "author": "Gillian Flynn",
        "category": "Thriller",
        "description": "A woman's disappearance spins an intricate web of lies.",
        "isbn": "978-0307588371",
        "price": 12.75,
        "published_date": date(2012, 6, 5),
        "page_count": 432,
        "tags": ["mystery", "thriller"],
    },
    {
        "title": "Sapiens",
        "author": "Yuval Noah Harari",
        "category": "Non-Fiction",
        "description": "A brief history of humankind.",
        "isbn": "978-0062316097",
        "price": 22.0,
        "published_date": date(2011, 1, 1),
        "page_count": 464,
        "tags": ["history", "non-fiction"],
    },
    {
        "title": "The Alchemist",
        "author": "Paulo Coelho",
        "category": "Fiction",
        "description": "A shepherd's journey to find treasure in Egypt.",
        "isbn": "978-0062315007",
        "price": 13.5,
        "published_date": date(1988, 1, 1),
        "page_count": 208,
        "tags": ["fiction", "philosophy"],
    },
    {
        "title": "Frankenstein",
        "author": "Mary Shelley",
        "category": "Horror",
        "description": "A scientist creates a monstrous creature.",
        "isbn": "978-0486282114",
        "price": 6.99,
        "published_date": date(1818, 1, 1),
        "page_count": 166,
        "tags": ["classic", "horror"],
    },
    {
        "title": "The Martian",
        "author": "Andy Weir",
        "category": "Science Fiction",
        "description": "An astronaut stranded on Mars must survive.",
        "isbn": "978-0553418026",
        "price": 15.99,
        "published_date": date(2011, 9, 27),
        "page_count": 387,
        "tags": ["sci-fi", "adventure"],
    },
    {
        "title": "Atomic Habits",
        "author": "James Clear",
        "category": "Self-Help",
        "description": "Tiny changes, remarkable results.",
        "isbn": "978-0735211292",
        "price": 16.2,
        "published_date": date(2018, 10, 16),
        "page_count": 320,
        "tags": ["self-help", "non-fiction"],
    },
]

SAMPLE_USERS = [
    {"email": "admin@bookstore.com", "name": "Admin", "password": "Admin@123456", "role": UserRole.ADMIN},
    {"email": "alice@example.com", "name": "Alice", "password": "Alice@123456", "role": UserRole.USER},
    {"email": "bob@example.com", "name": "Bob", "password": "Bob@1234567", "role": UserRole.USER},
    {"email": "carol@example.com", "name": "Carol", "password": "Carol@123456", "role": UserRole.USER},
    {"email": "dave@example.com", "name": "Dave", "password": "Dave@1234567", "role": UserRole.USER},
]

SAMPLE_COMMENTS = {
    1: "Could not get into it.",
    2: "Had its moments, mostly dull.",
    3: "Decent read, nothing special.",
    4: "Really enjoyed this one.",
    5: "An absolute favourite!",
}


async def seed():
    """Seed the database with sample data.

    Goes through the same services as the API so ratings and the inventory
    snapshot end up consistent with the seeded rows.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        # Check if already seeded
        result = await session.execute(select(User).limit(1))
        if result.scalar_one_or_none():
            print("Database already seeded. Skipping.")
            return

        tasks = BackgroundTasks()
        accounts = AccountService(session, activity_recorder, tasks)
        catalog = CatalogService(session, activity_recorder, tasks)

        # Create users
        users = []
        for u in SAMPLE_USERS:
            user = await accounts.register(
                UserRegister(name=u["name"], email=u["email"], password=u["password"])
            )
            if u["role"] == UserRole.ADMIN:
                user.role = UserRole.ADMIN
                await session.commit()
            users.append(user)
        print(f"Created {len(users)} users")

        # Create books, spread over the non-admin owners
        books = []
        for i, b in enumerate(SAMPLE_BOOKS):
            owner = users[1 + i % (len(users) - 1)]
            books.append(await catalog.create_book(owner, BookCreate(**b)))
        print(f"Created {len(books)} books")

        # Create random reviews
        count = 0
        for user in users[1:]:
            for book in random.sample(books, random.randint(3, 8)):
                rating = random.randint(1, 5)
                await catalog.add_review(user, book.id, rating, SAMPLE_COMMENTS[rating])
                count += 1
        print(f"Created {count} reviews")

        # Activity events and category counters were queued, not yet written
        await tasks()
        print("Seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed())
