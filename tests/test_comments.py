def test_create_comment_increments_post_counter(client, store, post):
    res = client.post("/api/comments", json={"postId": "p1", "content": "hello", "userId": "u1"})
    assert res.status_code == 201
    assert res.json()["comment"]["content"] == "hello"
    assert store.count("comments", {"post_id": "p1"}) == 1
    assert store.get("board_posts", "p1")["comments_count"] == 4


def test_create_comment_missing_field_creates_nothing(client, store, post):
    res = client.post("/api/comments", json={"postId": "p1", "userId": "u1"})
    assert res.status_code == 400
    assert "error" in res.json()
    assert store.count("comments") == 0
    assert store.get("board_posts", "p1")["comments_count"] == 3


def test_create_comment_unknown_post(client, store):
    res = client.post("/api/comments", json={"postId": "nope", "content": "hi", "userId": "u1"})
    assert res.status_code == 404
    assert store.count("comments") == 0


def test_delete_comment_decrements_parent(client, store, student, auth_headers):
    store.insert("board_posts", {
        "_id": "p2", "title": "t", "content": "c", "author_id": student["_id"], "comments_count": 1,
    })
    comment = store.insert("comments", {"post_id": "p2", "author_id": student["_id"], "content": "x", "likes": 0})

    res = client.delete(f"/api/comments/{comment['_id']}", headers=auth_headers(student))
    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert store.get("comments", comment["_id"]) is None
    assert store.get("board_posts", "p2")["comments_count"] == 0


def test_delete_comment_never_goes_negative(client, store, student, auth_headers):
    store.insert("board_posts", {
        "_id": "p3", "title": "t", "content": "c", "author_id": student["_id"], "comments_count": 0,
    })
    comment = store.insert("comments", {"post_id": "p3", "author_id": student["_id"], "content": "x"})

    res = client.delete(f"/api/comments/{comment['_id']}", headers=auth_headers(student))
    assert res.status_code == 200
    assert store.get("board_posts", "p3")["comments_count"] == 0


def test_delete_comment_by_other_user_forbidden(client, store, post, make_user, auth_headers):
    comment = store.insert("comments", {"post_id": "p1", "author_id": "someone-else", "content": "x"})
    other = make_user("student")
    res = client.delete(f"/api/comments/{comment['_id']}", headers=auth_headers(other))
    assert res.status_code == 403
    assert store.get("comments", comment["_id"]) is not None


def test_delete_unknown_comment(client, student, auth_headers):
    res = client.delete("/api/comments/missing", headers=auth_headers(student))
    assert res.status_code == 404


def test_list_comments_paginates_oldest_first(client, store, post, student):
    for i in range(3):
        store.insert("comments", {"post_id": "p1", "author_id": student["_id"], "content": f"c{i}"})

    res = client.get("/api/comments", params={"postId": "p1", "page": 2, "perPage": 2})
    body = res.json()
    assert res.status_code == 200
    assert body["totalCount"] == 3
    assert body["totalPages"] == 2
    assert body["currentPage"] == 2
    assert [c["content"] for c in body["comments"]] == ["c2"]
    assert body["comments"][0]["author"]["name"] == "Kim"
    assert body["comments"][0]["author"]["avatar"] == "/placeholder-user.jpg"


def test_list_comments_requires_post_id(client):
    assert client.get("/api/comments").status_code == 400


def test_comment_like_toggle(client, store, post):
    comment = store.insert("comments", {"post_id": "p1", "author_id": "u1", "content": "x", "likes": 0})
    url = f"/api/comments/{comment['_id']}/like"

    assert client.post(url, json={"userId": "u2"}).json() == {"isLiked": True}
    assert store.get("comments", comment["_id"])["likes"] == 1
    assert client.post(url, json={"userId": "u2"}).json() == {"isLiked": False}
    assert store.get("comments", comment["_id"])["likes"] == 0
