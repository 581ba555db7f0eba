"""Catalog behaviour: book CRUD, listing filters, reviews and their permissions."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from app.models.book import BookTag
from app.models.review import Review
from app.schemas.book import BookCreate
from app.services.catalog import normalize_tags, total_pages


class TestHelpers:
    def test_normalize_tags_keeps_first_seen_order(self):
        assert normalize_tags([" fiction", "mystery", "", "fiction ", "  "]) == ["fiction", "mystery"]

    def test_total_pages(self):
        assert total_pages(0, 10) == 0
        assert total_pages(10, 10) == 1
        assert total_pages(11, 10) == 2

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (["a", "b"], ["a", "b"]),
            ('["fiction", "mystery"]', ["fiction", "mystery"]),
            ("fiction, mystery ,", ["fiction", "mystery"]),
        ],
    )
    def test_tags_accept_list_json_or_comma_string(self, raw, expected):
        book = BookCreate(
            title="T",
            description="Long enough description",
            author="A",
            price=1,
            category="C",
            isbn="1234567890",
            tags=raw,
        )
        assert book.tags == expected


class TestBooks:
    @pytest.mark.asyncio
    async def test_create_book(self, client, make_user, book_payload):
        headers = await make_user(name="Owner")
        response = await client.post(
            "/books", json=book_payload(tags=["sci-fi", " classic", "sci-fi"]), headers=headers
        )
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Dune"
        assert data["tags"] == ["sci-fi", "classic"]
        assert data["owner_name"] == "Owner"
        assert data["average_rating"] == 0
        assert data["review_count"] == 0
        assert data["language"] == "English"

    @pytest.mark.asyncio
    async def test_create_book_validation(self, client, make_user, book_payload):
        headers = await make_user()
        response = await client.post("/books", json=book_payload(price=-1), headers=headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_book(self, client, make_book):
        book, _ = await make_book()
        response = await client.get(f"/books/{book['id']}")
        assert response.status_code == 200
        assert response.json()["isbn"] == "9780441013593"

    @pytest.mark.asyncio
    async def test_owner_updates_book(self, client, make_book):
        book, owner = await make_book()
        response = await client.patch(
            f"/books/{book['id']}", json={"price": 12.5, "tags": "desert, classic"}, headers=owner
        )
        assert response.status_code == 200
        assert response.json()["price"] == 12.5
        assert response.json()["tags"] == ["desert", "classic"]
        assert response.json()["title"] == "Dune"

        fetched = await client.get(f"/books/{book['id']}")
        assert fetched.json()["tags"] == ["desert", "classic"]

    @pytest.mark.asyncio
    async def test_stranger_cannot_update_or_delete(self, client, make_book, make_user):
        book, _ = await make_book()
        stranger = await make_user(name="Stranger")

        response = await client.patch(f"/books/{book['id']}", json={"price": 1}, headers=stranger)
        assert response.status_code == 403
        response = await client.delete(f"/books/{book['id']}", headers=stranger)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_can_delete_any_book(self, client, make_book, make_user):
        book, _ = await make_book()
        admin = await make_user(admin=True)
        response = await client.delete(f"/books/{book['id']}", headers=admin)
        assert response.status_code == 204
        assert (await client.get(f"/books/{book['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_book_removes_reviews_and_tags(self, client, make_book, make_user, session):
        book, owner = await make_book(tags=["sci-fi", "classic"])
        for name in ("Ann", "Ben"):
            reader = await make_user(name=name)
            response = await client.post(
                f"/books/{book['id']}/reviews", json={"rating": 4, "comment": "Worth it."}, headers=reader
            )
            assert response.status_code == 201

        response = await client.delete(f"/books/{book['id']}", headers=owner)
        assert response.status_code == 204

        reviews = await session.execute(select(func.count(Review.id)).where(Review.book_id == book["id"]))
        tags = await session.execute(select(func.count(BookTag.id)).where(BookTag.book_id == book["id"]))
        assert reviews.scalar() == 0
        assert tags.scalar() == 0

    @pytest.mark.asyncio
    async def test_list_my_books(self, client, make_book, make_user):
        owner = await make_user(name="Owner")
        await make_book(owner=owner, title="Mine")
        await make_book(title="Not mine")

        response = await client.get("/books/mine", headers=owner)
        assert response.status_code == 200
        assert [b["title"] for b in response.json()] == ["Mine"]


class TestListing:
    @pytest.mark.asyncio
    async def test_filters_and_sorting(self, client, make_book, make_user):
        owner = await make_user()
        await make_book(owner=owner, title="Dune", price=18, category="Science Fiction", tags=["sci-fi"])
        await make_book(
            owner=owner, title="Gone Girl", author="Gillian Flynn", price=12.75,
            category="Thriller", isbn="9780307588371", tags=["mystery"],
        )
        await make_book(
            owner=owner, title="Foundation", author="Isaac Asimov", price=11.25,
            category="Science Fiction", isbn="9780553293357", tags=["sci-fi", "classic"],
        )

        response = await client.get("/books", params={"category": "science fiction", "sort": "price_asc"})
        assert [b["title"] for b in response.json()["books"]] == ["Foundation", "Dune"]

        response = await client.get("/books", params={"search": "flynn"})
        assert [b["title"] for b in response.json()["books"]] == ["Gone Girl"]

        response = await client.get("/books", params={"tag": "classic"})
        assert [b["title"] for b in response.json()["books"]] == ["Foundation"]

        response = await client.get("/books", params={"min_price": 12, "max_price": 15})
        assert [b["title"] for b in response.json()["books"]] == ["Gone Girl"]

        response = await client.get("/books", params={"sort": "title"})
        assert [b["title"] for b in response.json()["books"]] == ["Dune", "Foundation", "Gone Girl"]

        response = await client.get("/books")
        assert response.json()["books"][0]["title"] == "Foundation"

    @pytest.mark.asyncio
    async def test_search_and_category_match_wildcards_literally(self, client, make_book, make_user):
        owner = await make_user()
        await make_book(owner=owner, title="Dune", category="Science Fiction")
        await make_book(owner=owner, title="100% Pure Prose", isbn="9780000000101")
        await make_book(owner=owner, title="snake_case Stories", isbn="9780000000102")

        response = await client.get("/books", params={"search": "%"})
        assert [b["title"] for b in response.json()["books"]] == ["100% Pure Prose"]

        response = await client.get("/books", params={"search": "_"})
        assert [b["title"] for b in response.json()["books"]] == ["snake_case Stories"]

        response = await client.get("/books", params={"category": "Science%"})
        assert response.json()["total"] == 0

        response = await client.get("/books", params={"category": "science_fiction"})
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_pagination(self, client, make_book, make_user):
        owner = await make_user()
        for i in range(5):
            await make_book(owner=owner, title=f"Book {i}", isbn=f"978000000000{i}")

        response = await client.get("/books", params={"page": 2, "limit": 2, "sort": "title"})
        data = response.json()
        assert data["total"] == 5
        assert data["total_pages"] == 3
        assert data["page"] == 2
        assert [b["title"] for b in data["books"]] == ["Book 2", "Book 3"]

    @pytest.mark.asyncio
    async def test_unknown_sort_rejected(self, client):
        response = await client.get("/books", params={"sort": "random"})
        assert response.status_code == 422


class TestReviews:
    @pytest.mark.asyncio
    async def test_add_review_updates_rating(self, client, make_book, make_user):
        book, _ = await make_book()
        reader = await make_user(name="Reader")

        response = await client.post(
            f"/books/{book['id']}/reviews", json={"rating": 5, "comment": "Loved it!"}, headers=reader
        )
        assert response.status_code == 201
        assert response.json()["user_name"] == "Reader"

        fetched = (await client.get(f"/books/{book['id']}")).json()
        assert fetched["average_rating"] == 5.0
        assert fetched["review_count"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_review_conflicts(self, client, make_book, make_user):
        book, _ = await make_book()
        reader = await make_user()
        review = {"rating": 4, "comment": "Good read."}

        first = await client.post(f"/books/{book['id']}/reviews", json=review, headers=reader)
        assert first.status_code == 201
        second = await client.post(
            f"/books/{book['id']}/reviews", json={"rating": 1, "comment": "Changed my mind."}, headers=reader
        )
        assert second.status_code == 409
        assert second.json()["detail"] == "You have already reviewed this book"

        fetched = (await client.get(f"/books/{book['id']}")).json()
        assert fetched["review_count"] == 1
        assert fetched["average_rating"] == 4.0

    @pytest.mark.asyncio
    async def test_review_unknown_book(self, client, make_user):
        reader = await make_user()
        response = await client.post(
            "/books/99999/reviews", json={"rating": 3, "comment": "Hmm, okay."}, headers=reader
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rating_out_of_range(self, client, make_book, make_user):
        book, _ = await make_book()
        reader = await make_user()
        response = await client.post(
            f"/books/{book['id']}/reviews", json={"rating": 6, "comment": "Off the charts"}, headers=reader
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_reviews_paginated(self, client, make_book, make_user):
        book, _ = await make_book()
        for i in range(3):
            reader = await make_user(name=f"Reader {i}")
            await client.post(
                f"/books/{book['id']}/reviews", json={"rating": 3, "comment": f"Review {i}"}, headers=reader
            )

        response = await client.get(f"/books/{book['id']}/reviews", params={"page": 1, "limit": 2})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["totalPages"] == 2
        assert data["currentPage"] == 1
        assert [r["comment"] for r in data["reviews"]] == ["Review 2", "Review 1"]

    @pytest.mark.asyncio
    async def test_delete_review_recomputes_rating(self, client, make_book, make_user):
        book, _ = await make_book()
        ann = await make_user(name="Ann")
        ben = await make_user(name="Ben")
        await client.post(f"/books/{book['id']}/reviews", json={"rating": 4, "comment": "Solid."}, headers=ann)
        created = await client.post(
            f"/books/{book['id']}/reviews", json={"rating": 2, "comment": "Meh, slow."}, headers=ben
        )
        assert (await client.get(f"/books/{book['id']}")).json()["average_rating"] == 3.0

        response = await client.delete(f"/reviews/{created.json()['id']}", headers=ben)
        assert response.status_code == 204

        fetched = (await client.get(f"/books/{book['id']}")).json()
        assert fetched["average_rating"] == 4.0
        assert fetched["review_count"] == 1

    @pytest.mark.asyncio
    async def test_only_author_or_admin_deletes_review(self, client, make_book, make_user):
        book, owner = await make_book()
        reader = await make_user()
        created = await client.post(
            f"/books/{book['id']}/reviews", json={"rating": 5, "comment": "Great book."}, headers=reader
        )
        review_id = created.json()["id"]

        assert (await client.delete(f"/reviews/{review_id}", headers=owner)).status_code == 403

        admin = await make_user(admin=True)
        assert (await client.delete(f"/reviews/{review_id}", headers=admin)).status_code == 204
        assert (await client.delete(f"/reviews/{review_id}", headers=admin)).status_code == 404


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def image_host_on(monkeypatch):
    """Configure the image host and capture what is sent to it."""
    from app.config import get_settings
    from app.services import image_host

    settings = get_settings()
    monkeypatch.setattr(settings, "image_host_cloud_name", "demo")
    monkeypatch.setattr(settings, "image_host_api_key", "key")
    monkeypatch.setattr(settings, "image_host_api_secret", "secret")

    sent = {"uploads": [], "deleted": []}

    async def upload(source):
        body = source.file.read()
        sent["uploads"].append((source.filename, source.content_type, body))
        n = len(sent["uploads"])
        return image_host.HostedImage(url=f"https://img.test/covers/{n}.png", public_id=f"covers/{n}")

    async def destroy(public_id):
        sent["deleted"].append(public_id)

    monkeypatch.setattr(image_host, "upload_image", upload)
    monkeypatch.setattr(image_host, "delete_image", destroy)
    return sent


def _form(**overrides):
    fields = {
        "title": "Dune",
        "description": "Politics, prophecy and spice on a desert planet.",
        "author": "Frank Herbert",
        "price": "18.0",
        "category": "Science Fiction",
        "isbn": "9780441013593",
        "tags": "sci-fi, classic",
    }
    fields.update(overrides)
    return fields


class TestCoverUploads:
    @pytest.mark.asyncio
    async def test_multipart_create_streams_cover_to_host(self, client, make_user, image_host_on):
        headers = await make_user()
        response = await client.post(
            "/books",
            data=_form(),
            files={"coverImage": ("dune.png", PNG_BYTES, "image/png")},
            headers=headers,
        )

        assert response.status_code == 201, response.text
        data = response.json()
        assert data["cover_image_url"] == "https://img.test/covers/1.png"
        assert data["tags"] == ["sci-fi", "classic"]
        assert data["price"] == 18.0
        assert image_host_on["uploads"] == [("dune.png", "image/png", PNG_BYTES)]

    @pytest.mark.asyncio
    async def test_multipart_update_replaces_cover(self, client, make_user, image_host_on):
        headers = await make_user()
        created = await client.post(
            "/books",
            data=_form(),
            files={"coverImage": ("dune.png", PNG_BYTES, "image/png")},
            headers=headers,
        )
        book_id = created.json()["id"]

        response = await client.patch(
            f"/books/{book_id}",
            data={"title": "Dune Messiah"},
            files={"coverImage": ("messiah.jpg", b"\xff\xd8\xff" + b"\x00" * 32, "image/jpeg")},
            headers=headers,
        )

        assert response.status_code == 200, response.text
        assert response.json()["title"] == "Dune Messiah"
        assert response.json()["cover_image_url"] == "https://img.test/covers/2.png"
        assert image_host_on["deleted"] == ["covers/1"]

    @pytest.mark.asyncio
    async def test_non_image_cover_is_rejected(self, client, make_user, image_host_on):
        headers = await make_user()
        response = await client.post(
            "/books",
            data=_form(),
            files={"coverImage": ("notes.txt", b"plain text", "text/plain")},
            headers=headers,
        )

        assert response.status_code == 400
        assert (await client.get("/books")).json()["total"] == 0
        assert image_host_on["uploads"] == []

    @pytest.mark.asyncio
    async def test_oversized_cover_is_rejected(self, client, make_user, image_host_on, monkeypatch):
        from app.config import get_settings

        monkeypatch.setattr(get_settings(), "cover_image_max_bytes", 16)
        headers = await make_user()
        response = await client.post(
            "/books",
            data=_form(),
            files={"coverImage": ("big.png", PNG_BYTES, "image/png")},
            headers=headers,
        )

        assert response.status_code == 413
        assert (await client.get("/books")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_multipart_fields_are_validated(self, client, make_user):
        headers = await make_user()
        response = await client.post("/books", data=_form(price="-3"), headers=headers)
        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "price"]

    @pytest.mark.asyncio
    async def test_cover_upload_without_image_host_still_creates_book(self, client, make_user):
        headers = await make_user()
        response = await client.post(
            "/books",
            data=_form(),
            files={"coverImage": ("dune.png", PNG_BYTES, "image/png")},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["cover_image_url"] is None
