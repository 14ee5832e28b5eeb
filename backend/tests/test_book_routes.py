def test_create_and_get_book(client, sample_book):
    resp = client.post("/api/books", json=sample_book)
    assert resp.status_code == 201
    assert resp.json() == {"success": True, "id": "book-1"}

    resp = client.get("/api/books/book-1")
    assert resp.status_code == 200
    book = resp.json()
    assert book["title"] == "The Brave Little Cat"
    assert book["targetAge"] == "3-5"
    assert [p["pageNumber"] for p in book["pages"]] == [1, 2, 3]
    assert book["pages"][0]["content"] == "First"
    assert book["pages"][0]["imageUrl"] == "https://cdn.example.com/1.png"
    assert book["pages"][2]["imageUrl"] is None


def test_create_rejects_duplicate_page_numbers(client, sample_book):
    sample_book["pages"][1]["pageNumber"] = 2
    resp = client.post("/api/books", json=sample_book)
    assert resp.status_code == 422


def test_create_rejects_gap_in_page_numbers(client, sample_book):
    sample_book["pages"][2]["pageNumber"] = 5
    resp = client.post("/api/books", json=sample_book)
    assert resp.status_code == 422


def test_create_duplicate_id_is_conflict(client, sample_book):
    client.post("/api/books", json=sample_book)
    resp = client.post("/api/books", json=sample_book)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


def test_list_books_has_no_pages(client, sample_book):
    client.post("/api/books", json=sample_book)
    resp = client.get("/api/books")
    assert resp.status_code == 200
    books = resp.json()
    assert len(books) == 1
    assert "pages" not in books[0]
    assert books[0]["createdAt"]


def test_list_books_unknown_sort_column_is_not_an_error(client, sample_book):
    client.post("/api/books", json=sample_book)
    client.post("/api/books", json={**sample_book, "id": "book-2", "title": "Another"})

    resp = client.get("/api/books", params={"sortBy": "not-a-column", "order": "sideways"})

    assert resp.status_code == 200
    assert {b["id"] for b in resp.json()} == {"book-1", "book-2"}


def test_list_books_sort_by_title(client, sample_book):
    client.post("/api/books", json={**sample_book, "id": "z", "title": "Zoo"})
    client.post("/api/books", json={**sample_book, "id": "a", "title": "Ant"})

    resp = client.get("/api/books", params={"sortBy": "title", "order": "asc"})

    assert [b["title"] for b in resp.json()] == ["Ant", "Zoo"]


def test_get_missing_book_is_404(client):
    resp = client.get("/api/books/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Book not found", "code": "not_found"}


def test_patch_title_only_keeps_other_fields(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.patch("/api/books/book-1", json={"title": "X"})

    assert resp.status_code == 200
    book = resp.json()
    assert book["title"] == "X"
    assert book["theme"] == "a brave cat explores the moon"
    assert book["targetAge"] == "3-5"
    assert book["moralValue"] == "courage"
    assert book["coverImageUrl"] == "https://cdn.example.com/cover.png"


def test_patch_null_theme_keeps_theme(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.patch("/api/books/book-1", json={"theme": None})

    assert resp.status_code == 200
    assert resp.json()["theme"] == "a brave cat explores the moon"


def test_patch_missing_book_is_404(client):
    resp = client.patch("/api/books/nope", json={"title": "X"})
    assert resp.status_code == 404


def test_put_replaces_metadata(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.put(
        "/api/books/book-1",
        json={"title": "New", "theme": "sea", "targetAge": "6-8", "moralValue": "kindness"},
    )

    assert resp.status_code == 200
    assert resp.json()["moralValue"] == "kindness"
    assert len(resp.json()["pages"]) == 3


def test_put_requires_all_fields(client, sample_book):
    client.post("/api/books", json=sample_book)
    resp = client.put("/api/books/book-1", json={"title": "New"})
    assert resp.status_code == 422


def test_delete_book_then_get_is_404(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.delete("/api/books/book-1")
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    assert client.get("/api/books/book-1").status_code == 404
    # deleting again still succeeds
    assert client.delete("/api/books/book-1").json() == {"success": True}


def test_delete_all_books(client, sample_book):
    client.post("/api/books", json=sample_book)
    client.post("/api/books", json={**sample_book, "id": "book-2"})

    resp = client.delete("/api/books")

    assert resp.json() == {"success": True, "deleted": 2}
    assert client.get("/api/books").json() == []


def test_patch_page(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.patch("/api/books/book-1/pages/2", json={"content": "Edited text"})

    assert resp.status_code == 200
    assert resp.json()["content"] == "Edited text"
    assert resp.json()["imagePrompt"] == "cat on moon"


def test_patch_first_page_image_refreshes_cover(client, sample_book):
    client.post("/api/books", json=sample_book)

    client.patch("/api/books/book-1/pages/1", json={"imageUrl": "https://cdn.example.com/new.png"})

    assert client.get("/api/books/book-1").json()["coverImageUrl"] == "https://cdn.example.com/new.png"


def test_patch_missing_page_is_404(client, sample_book):
    client.post("/api/books", json=sample_book)
    resp = client.patch("/api/books/book-1/pages/42", json={"content": "x"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Page 42 not found"


def test_regenerate_page_image_with_gemini(client, sample_book, genai_client):
    client.post("/api/books", json=sample_book)

    resp = client.post("/api/books/book-1/pages/3/image", json={"geminiApiKey": "user-key"})

    assert resp.status_code == 200
    assert resp.json()["imageUrl"].startswith("data:image/png;base64,")
    assert genai_client.keys == ["user-key"]
    assert genai_client.image_calls[0]["contents"]["parts"][0]["text"] == "cat home"


def test_regenerate_page_image_with_placeholder_engine(client, sample_book, genai_client):
    client.post("/api/books", json=sample_book)

    resp = client.post(
        "/api/books/book-1/pages/1/image",
        json={"imageEngine": "placeholder", "prompt": "a cat waving"},
    )

    assert resp.status_code == 200
    page = resp.json()
    assert page["imagePrompt"] == "a cat waving"
    assert genai_client.calls == []
    assert client.get("/api/books/book-1").json()["coverImageUrl"] == page["imageUrl"]


def test_regenerate_missing_page_is_404(client, sample_book):
    client.post("/api/books", json=sample_book)
    resp = client.post("/api/books/book-1/pages/7/image", json={"imageEngine": "placeholder"})
    assert resp.status_code == 404


def test_health(client):
    resp = client.get("/health")
    assert resp.json() == {"status": "healthy", "db": "connected"}


def test_patch_empty_title_is_rejected(client, sample_book):
    client.post("/api/books", json=sample_book)

    resp = client.patch("/api/books/book-1", json={"title": ""})

    assert resp.status_code == 422
    assert client.get("/api/books/book-1").json()["title"] == "The Brave Little Cat"
