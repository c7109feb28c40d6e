def test_create_post_requires_session(client, store):
    res = client.post("/api/board-posts", json={"title": "t", "content": "c"})
    assert res.status_code == 401
    assert store.count("board_posts") == 0


def test_create_and_list_posts(client, store, student, auth_headers):
    res = client.post("/api/board-posts", json={"title": "Hi", "content": "there"}, headers=auth_headers(student))
    assert res.status_code == 201
    body = res.json()
    assert body["author_name"] == "Kim"
    assert body["likes"] == 0

    listing = client.get("/api/board-posts").json()
    assert [p["id"] for p in listing] == [body["id"]]


def test_create_post_missing_title(client, store, student, auth_headers):
    res = client.post("/api/board-posts", json={"content": "there"}, headers=auth_headers(student))
    assert res.status_code == 400
    assert store.count("board_posts") == 0


def test_list_puts_pinned_first(client, store, post):
    store.insert("board_posts", {"_id": "p9", "title": "pinned", "content": "c", "author_id": "gone", "is_pinned": True})
    listing = client.get("/api/board-posts").json()
    assert [p["id"] for p in listing] == ["p9", "p1"]
    assert listing[0]["author_name"] == "Unknown"


def test_get_post_counts_views(client, store, post):
    assert client.get("/api/board-posts/p1").json()["views"] == 1
    assert store.get("board_posts", "p1")["views"] == 1


def test_get_unknown_post(client):
    res = client.get("/api/board-posts/missing")
    assert res.status_code == 404
    assert res.json() == {"error": "게시글을 찾을 수 없습니다."}


def test_update_post_by_other_user_forbidden(client, post, make_user, auth_headers):
    other = make_user("student")
    res = client.put("/api/board-posts/p1", json={"title": "changed"}, headers=auth_headers(other))
    assert res.status_code == 403


def test_admin_deletes_post_with_children(client, store, post, admin, auth_headers):
    comment = store.insert("comments", {"post_id": "p1", "author_id": "u1", "content": "x"})
    store.insert("comment_likes", {"comment_id": comment["_id"], "user_id": "u2"})
    store.insert("post_likes", {"post_id": "p1", "user_id": "u2"})
    store.insert("bookmarks", {"post_id": "p1", "user_id": "u2"})

    res = client.delete("/api/board-posts/p1", headers=auth_headers(admin))
    assert res.status_code == 200
    for table in ("board_posts", "comments", "comment_likes", "post_likes", "bookmarks"):
        assert store.count(table) == 0


def test_pin_requires_admin(client, post, student, admin, auth_headers):
    assert client.patch("/api/board-posts/p1/pin", json={"is_pinned": True}, headers=auth_headers(student)).status_code == 403
    # role check happens before the body is validated
    assert client.patch("/api/board-posts/p1/pin", json={}, headers=auth_headers(student)).status_code == 403
    res = client.patch("/api/board-posts/p1/pin", json={"is_pinned": True}, headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.json()["is_pinned"] is True


def test_like_toggle_and_status(client, store, post):
    res = client.post("/api/board-posts/p1/like", json={"userId": "u1"})
    assert res.json() == {"isLiked": True, "likes": 1}
    assert client.get("/api/board-posts/p1/like-status", params={"userId": "u1"}).json() == {"isLiked": True}

    res = client.post("/api/board-posts/p1/like", json={"userId": "u1"})
    assert res.json() == {"isLiked": False, "likes": 0}
    assert store.count("post_likes") == 0


def test_unlike_with_drifted_counter_stays_at_zero(client, store, post):
    store.insert("post_likes", {"post_id": "p1", "user_id": "u1"})
    res = client.post("/api/board-posts/p1/like", json={"userId": "u1"})
    assert res.json() == {"isLiked": False, "likes": 0}


def test_like_unknown_post(client, store):
    assert client.post("/api/board-posts/missing/like", json={"userId": "u1"}).status_code == 404
    assert store.count("post_likes") == 0


def test_like_status_requires_user(client, post):
    assert client.get("/api/board-posts/p1/like-status").status_code == 400


def test_bookmark_add_is_idempotent(client, store, post):
    payload = {"postId": "p1", "userId": "u1", "action": "add"}
    assert client.post("/api/bookmarks", json=payload).status_code == 200
    assert client.post("/api/bookmarks", json=payload).status_code == 200
    assert store.count("bookmarks") == 1
    check = client.get("/api/bookmarks/check", params={"postId": "p1", "userId": "u1"})
    assert check.json() == {"isBookmarked": True}


def test_bookmark_remove_absent_succeeds(client, store):
    payload = {"postId": "p1", "userId": "u1", "action": "remove"}
    res = client.post("/api/bookmarks", json=payload)
    assert res.status_code == 200
    assert res.json()["success"] is True
    assert client.post("/api/bookmarks", json=payload).status_code == 200


def test_bookmark_unknown_action(client, store):
    res = client.post("/api/bookmarks", json={"postId": "p1", "userId": "u1", "action": "toggle"})
    assert res.status_code == 400
    assert store.count("bookmarks") == 0


def test_report_lifecycle(client, store, post, admin, auth_headers):
    payload = {"postId": "p1", "userId": "u1", "reason": "spam"}
    assert client.post("/api/reports", json=payload).status_code == 201
    assert client.post("/api/reports", json=payload).status_code == 400

    reports = client.get("/api/reports", headers=auth_headers(admin)).json()["reports"]
    assert len(reports) == 1
    assert reports[0]["post"]["title"] == "Hello"
    assert reports[0]["reporter"] is None

    report_id = reports[0]["id"]
    assert client.patch(f"/api/reports/{report_id}", json={"status": "bogus"}, headers=auth_headers(admin)).status_code == 400
    res = client.put(f"/api/reports/{report_id}", json={"status": "resolved"}, headers=auth_headers(admin))
    assert res.json()["report"]["status"] == "resolved"
    assert client.get("/api/reports", headers=auth_headers(admin)).json()["reports"] == []

    assert client.delete(f"/api/reports/{report_id}", headers=auth_headers(admin)).status_code == 200
    assert store.count("reports") == 0


def test_reports_listing_forbidden_for_students(client, student, auth_headers):
    assert client.get("/api/reports", headers=auth_headers(student)).status_code == 403


def test_reports_listing_requires_session(client):
    assert client.get("/api/reports").status_code == 401


def test_update_post_rejects_null_title(client, store, post, student, auth_headers):
    res = client.put("/api/board-posts/p1", json={"title": None}, headers=auth_headers(student))
    assert res.status_code == 400
    assert store.get("board_posts", "p1")["title"] == "Hello"


def test_update_post_by_author(client, store, post, student, auth_headers):
    res = client.put("/api/board-posts/p1", json={"title": "Edited", "image_url": None}, headers=auth_headers(student))
    assert res.status_code == 200
    assert store.get("board_posts", "p1")["title"] == "Edited"


def test_report_missing_reason_creates_nothing(client, store, post):
    res = client.post("/api/reports", json={"postId": "p1", "userId": "u1"})
    assert res.status_code == 400
    assert store.count("reports") == 0


def test_bookmark_missing_user_creates_nothing(client, store, post):
    res = client.post("/api/bookmarks", json={"postId": "p1", "action": "add"})
    assert res.status_code == 400
    assert store.count("bookmarks") == 0
