from datetime import timedelta

from campus_library.models import models
from campus_library.models.models import utcnow


def test_health(anon):
    response = anon.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_user_and_book_and_borrow_return(login, make_user):
    admin = login(make_user("Root", role=models.Role.ADMIN))

    # Create user
    user = {"name": "Test User", "email": "test@example.com", "password": "secret123"}
    r = admin.post("/users/", json=user)
    assert r.status_code == 201
    user_id = r.json()["id"]

    # Create book
    book = {"title": "Test Book", "author": "Author", "isbn": "12345", "category": "Testing"}
    r = admin.post("/books/", json=book)
    assert r.status_code == 201
    book_id = r.json()["id"]
    assert r.json()["available"] is True

    # Borrow book
    r = admin.post("/borrowings/", json={"user_id": user_id, "book_id": book_id})
    assert r.status_code == 201
    borrowing = r.json()
    assert borrowing["status"] == "OPEN"
    assert borrowing["user"]["id"] == user_id
    assert borrowing["book"]["id"] == book_id
    assert admin.get(f"/books/{book_id}").json()["available"] is False

    # Borrow again
    r = admin.post("/borrowings/", json={"user_id": user_id, "book_id": book_id})
    assert r.status_code == 409

    # Return book
    r = admin.post(f"/borrowings/{borrowing['id']}/return")
    assert r.status_code == 200
    assert r.json()["status"] == "RETURNED"
    assert r.json()["fine"] == 0.0
    assert admin.get(f"/books/{book_id}").json()["available"] is True

    # Return again
    r = admin.put(f"/borrowings/{borrowing['id']}/return")
    assert r.status_code == 400
    assert r.json()["detail"] == "Book already returned"


def test_student_borrows_for_self_only(login, make_user, make_book):
    ann = make_user("Ann")
    bob = make_user("Bob")
    book = make_book()
    client = login(ann)

    r = client.post("/borrowings/", json={"book_id": book.id, "user_id": bob.id})
    assert r.status_code == 403

    r = client.post("/borrowings/", json={"book_id": book.id})
    assert r.status_code == 201
    assert r.json()["user_id"] == ann.id


def test_student_cannot_choose_loan_dates(login, make_user, make_book):
    client = login(make_user("Ann"))
    book = make_book()

    r = client.post("/borrowings/", json={"book_id": book.id, "due_date": "2099-01-01T00:00:00"})
    assert r.status_code == 403
    r = client.post("/borrowings/", json={"book_id": book.id, "borrowed_at": "2026-01-01T00:00:00"})
    assert r.status_code == 403
    assert client.get("/borrowings/").json() == []
    assert client.get(f"/books/{book.id}").json()["available"] is True


def test_borrowing_visibility(login, make_user, make_book):
    ann = make_user("Ann")
    bob = make_user("Bob")
    ann_client = login(ann)
    bob_client = login(bob)
    librarian = login(make_user("Lib", role=models.Role.LIBRARIAN))

    mine = ann_client.post("/borrowings/", json={"book_id": make_book().id}).json()
    bob_client.post("/borrowings/", json={"book_id": make_book(title="SICP").id})

    assert [b["id"] for b in ann_client.get("/borrowings/").json()] == [mine["id"]]
    assert len(librarian.get("/borrowings/").json()) == 2
    assert bob_client.get(f"/borrowings/{mine['id']}").status_code == 403
    assert bob_client.post(f"/borrowings/{mine['id']}/return").status_code == 403
    assert ann_client.get(f"/borrowings/{mine['id']}").status_code == 200
    assert ann_client.get("/borrowings/999").status_code == 404


def test_late_return_through_api(login, make_user, make_book):
    ann = make_user("Ann")
    client = login(ann)
    librarian = login(make_user("Lib", role=models.Role.LIBRARIAN))
    started = utcnow() - timedelta(days=20)
    due = started + timedelta(days=14)
    r = librarian.post("/borrowings/", json={"book_id": make_book().id, "user_id": ann.id,
                                             "borrowed_at": started.isoformat(),
                                             "due_date": due.isoformat()})
    assert r.status_code == 201
    assert r.json()["overdue"] is True

    overdue = client.get("/borrowings/", params={"overdue": "true"}).json()
    assert [b["id"] for b in overdue] == [r.json()["id"]]

    returned = client.post(f"/borrowings/{r.json()['id']}/return").json()
    # six days and a bit late
    assert returned["fine"] == 7.0
    assert returned["overdue"] is False


def test_borrowing_payload_validation(login, make_user, make_book):
    client = login(make_user("Ann"))
    book = make_book()
    r = client.post("/borrowings/", json={"book_id": book.id,
                                          "borrowed_at": "2026-02-01T00:00:00",
                                          "due_date": "2026-01-01T00:00:00"})
    assert r.status_code == 400
    assert client.post("/borrowings/", json={}).status_code == 400
    assert client.post("/borrowings/", json={"book_id": 999}).status_code == 404


def test_staff_can_extend_due_date(login, make_user, make_book):
    ann = make_user("Ann")
    student = login(ann)
    librarian = login(make_user("Lib", role=models.Role.LIBRARIAN))
    b = student.post("/borrowings/", json={"book_id": make_book().id}).json()

    assert student.patch(f"/borrowings/{b['id']}", json={"due_date": "2099-01-01T00:00:00"}).status_code == 403
    r = librarian.patch(f"/borrowings/{b['id']}", json={"due_date": "2099-01-01T00:00:00Z"})
    assert r.status_code == 200
    assert r.json()["due_date"] == "2099-01-01T00:00:00"


def test_unauthenticated_requests_are_401(anon):
    for method, path in [("get", "/books/"), ("get", "/borrowings/"), ("post", "/borrowings/"),
                         ("get", "/users/"), ("get", "/dashboard/admin")]:
        kwargs = {"json": {"book_id": 1}} if method == "post" else {}
        assert getattr(anon, method)(path, **kwargs).status_code == 401, path
