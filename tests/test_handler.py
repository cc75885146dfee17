import datetime
from decimal import Decimal
from http import HTTPStatus

import pytest

from conftest import Comment, Foo, Post, Profile, User
from sarest.serialization import deserialize


@pytest.fixture
def users(session):
    """
    user1 with Post1 (view_count 1, published), user2 with Post2 (view_count 2, not published)
    """
    session.add(User(my_id="user1", email="user1@abc.com", posts=[Post(id=1, title="Post1", view_count=1, published=True)]))
    session.add(User(my_id="user2", email="user2@abc.com", posts=[Post(id=2, title="Post2", view_count=2, published=False)]))
    session.commit()


def _ids(response):
    return [resource["id"] for resource in response.body["data"]]


#
# GET
#
def test_empty_collection(api) -> None:
    r = api("GET", "/user")
    assert r.status == HTTPStatus.OK
    assert r.body["data"] == []
    assert r.body["meta"]["total"] == 0
    assert r.body["jsonapi"] == {"version": "1.1"}
    assert r.body["links"]["self"] == "http://localhost/api/user"


def test_collection(api, users) -> None:
    r = api("GET", "/user")
    assert r.status == 200
    assert _ids(r) == ["user1", "user2"]
    user1 = r.body["data"][0]
    assert user1["attributes"] == {"email": "user1@abc.com"}
    assert user1["links"] == {"self": "http://localhost/api/user/user1"}
    assert user1["relationships"]["posts"] == {
        "links": {
            "self": "http://localhost/api/user/user1/relationships/posts",
            "related": "http://localhost/api/user/user1/posts",
        },
        "data": [{"type": "post", "id": 1}],
    }
    assert user1["relationships"]["profile"]["data"] is None


def test_single(api, users) -> None:
    r = api("GET", "/post/1")
    assert r.status == 200
    assert r.body["data"]["id"] == 1
    assert r.body["data"]["attributes"]["title"] == "Post1"
    assert r.body["data"]["relationships"]["author"]["data"] == {"type": "user", "id": "user1"}
    assert r.body["links"]["self"] == "http://localhost/api/post/1"


def test_single_not_found(api) -> None:
    r = api("GET", "/user/nope")
    assert r.status == 404
    assert r.body == {"errors": [{"status": 404, "code": "not-found", "title": "Resource not found"}]}


def test_invalid_type_and_relationship(api, users) -> None:
    assert api("GET", "/foo_bar").status == 404
    assert api("GET", "/foo_bar").body["errors"][0]["code"] == "unsupported-model"
    assert api("POST", "/foo_bar", body={"data": {"type": "foo_bar"}}).status == 400
    assert api("GET", "/user/user3/posts").status == 404
    assert api("GET", "/user/user1/relationships/foo").status == 404
    assert api("GET", "/user/user1/foo").status == 404
    r = api("GET", "/user/user1/foo")
    assert r.body["errors"][0]["code"] == "unsupported-relationship"


def test_compound_id_type(api) -> None:
    r = api("GET", "/postLike")
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "multi-id"


def test_invalid_path_and_verb(api) -> None:
    r = api("GET", "/a/b/c/d")
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-path"
    r = api("OPTIONS", "/user")
    assert r.body["errors"][0] == {"status": 400, "code": "invalid-verb", "title": "The HTTP verb is not supported", "detail": "Unsupported HTTP verb OPTIONS"}


def test_invalid_id(api) -> None:
    r = api("GET", "/post/abc")
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-id"


def test_fetch_related(api, users) -> None:
    r = api("GET", "/post/1/author")
    assert r.status == 200
    assert r.body["data"]["id"] == "user1"
    assert r.body["data"]["attributes"] == {"email": "user1@abc.com"}
    assert r.body["links"]["self"] == "http://localhost/api/post/1/author"

    r = api("GET", "/user/user1/posts")
    assert r.status == 200
    assert _ids(r) == [1]
    assert r.body["meta"]["total"] == 1


def test_fetch_missing_to_one(api, users) -> None:
    r = api("GET", "/user/user1/profile")
    assert r.status == 200
    assert r.body["data"] is None


def test_fetch_relationship(api, users) -> None:
    r = api("GET", "/user/user1/relationships/posts")
    assert r.status == 200
    assert r.body["data"] == [{"type": "post", "id": 1}]
    assert r.body["links"]["self"] == "http://localhost/api/user/user1/relationships/posts"

    r = api("GET", "/post/1/relationships/author")
    assert r.body["data"] == {"type": "user", "id": "user1"}


#
# filter, sort, include
#
@pytest.mark.parametrize(
    "type_name, query, expected",
    [
        ("user", {"filter[id]": "user2"}, ["user2"]),
        ("user", {"filter[id]": "user1,user2"}, ["user1", "user2"]),
        ("user", {"filter[email]": "user1@abc.com"}, ["user1"]),
        ("user", {"filter[email$contains]": "1@abc"}, ["user1"]),
        ("user", {"filter[email$contains]": "1@bc"}, []),
        ("user", {"filter[email$startsWith]": "user1"}, ["user1"]),
        ("user", {"filter[email$startsWith]": "ser1"}, []),
        ("user", {"filter[email$endsWith]": "1@abc.com"}, ["user1"]),
        ("user", {"filter[email$endsWith]": "1@abc"}, []),
        ("post", {"filter[view_count]": "1"}, [1]),
        ("post", {"filter[view_count$gt]": "0"}, [1, 2]),
        ("post", {"filter[view_count$gte]": "2"}, [2]),
        ("post", {"filter[view_count$lt]": "0"}, []),
        ("post", {"filter[view_count$lte]": "1"}, [1]),
        ("post", {"filter[published]": "true"}, [1]),
        ("post", {"filter[author][email]": "user1@abc.com"}, [1]),
        ("user", {"filter[posts][published]": "true"}, ["user1"]),
        ("user", {"filter[id]": "user3"}, []),
        ("user", {"filter[posts]": "2"}, ["user2"]),
        ("user", {"filter[posts]": "1,2,3"}, ["user1", "user2"]),
        ("user", {"filter[id]": "user1", "filter[posts]": "2"}, []),
        ("post", {"filter[author]": "user1"}, [1]),
    ],
)
def test_filter(api, users, type_name: str, query, expected) -> None:
    r = api("GET", f"/{type_name}", query)
    assert r.status == 200
    assert _ids(r) == expected


def test_invalid_filter(api, users) -> None:
    r = api("GET", "/user", {"filter[foo]": "1"})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-filter"
    assert r.body["errors"][0]["title"] == "Invalid filter"

    r = api("GET", "/post", {"filter[view_count]": "a"})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-value"
    assert r.body["errors"][0]["title"] == "Invalid value for type"

    r = api("GET", "/user", {"filter[email$bogus]": "x"})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-filter"


def test_related_and_relationship_filter(api, session) -> None:
    session.add(User(my_id="user1", email="user1@abc.com", posts=[Post(id=1, title="Post1", view_count=1), Post(id=2, title="Post2", view_count=2)]))
    session.commit()
    r = api("GET", "/user/user1/posts", {"filter[view_count]": "1"})
    assert _ids(r) == [1]
    r = api("GET", "/user/user1/relationships/posts", {"filter[view_count]": "2"})
    assert r.body["data"] == [{"type": "post", "id": 2}]


@pytest.mark.parametrize(
    "sort, first",
    [
        ("view_count", 1),
        ("-view_count", 2),
        ("-author", 2),
        ("-author.email", 2),
        ("published,view_count", 2),
        ("view_count,published", 1),
        ("-view_count,-published", 2),
    ],
)
def test_sort(api, users, sort: str, first: int) -> None:
    r = api("GET", "/post", {"sort": sort})
    assert r.status == 200
    assert r.body["data"][0]["id"] == first


@pytest.mark.parametrize("sort", ["foo", "comments", "view_count.foo"])
def test_invalid_sort(api, users, sort: str) -> None:
    r = api("GET", "/post", {"sort": sort})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-sort"


def test_related_sort(api, session) -> None:
    session.add(User(my_id="user1", email="user1@abc.com", posts=[Post(id=1, title="Post1", view_count=1), Post(id=2, title="Post2", view_count=2)]))
    session.commit()
    assert _ids(api("GET", "/user/user1/posts", {"sort": "-view_count"})) == [2, 1]
    r = api("GET", "/user/user1/relationships/posts", {"sort": "-view_count"})
    assert r.body["data"] == [{"type": "post", "id": 2}, {"type": "post", "id": 1}]


def test_include(api, session) -> None:
    session.add(
        User(
            my_id="user1",
            email="user1@abc.com",
            profile=Profile(id=1, gender="female"),
            posts=[Post(id=1, title="Post1", comments=[Comment(id=1, content="Comment1")])],
        )
    )
    session.add(User(my_id="user2", email="user2@abc.com"))
    session.commit()

    r = api("GET", "/user", {"include": "posts"})
    assert [(resource["type"], resource["id"]) for resource in r.body["included"]] == [("post", 1)]

    r = api("GET", "/user", {"include": "posts.comments,profile"})
    assert [(resource["type"], resource["id"]) for resource in r.body["included"]] == [("post", 1), ("profile", 1), ("comment", 1)]
    assert r.body["included"][2]["attributes"]["content"] == "Comment1"

    r = api("GET", "/user/user1", {"include": "posts"})
    assert r.body["included"][0]["attributes"]["title"] == "Post1"

    r = api("GET", "/user/user1/posts", {"include": "posts.comments"})
    assert [(resource["type"], resource["id"]) for resource in r.body["included"]] == [("comment", 1)]

    r = api("GET", "/user", {"include": "foo"})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "unsupported-relationship"


def test_sparse_fields(api, users) -> None:
    r = api("GET", "/post", {"fields[post]": "title"})
    assert [resource["attributes"] for resource in r.body["data"]] == [{"title": "Post1"}, {"title": "Post2"}]


#
# pagination
#
@pytest.fixture
def five_users(session):
    for i in range(5):
        session.add(User(my_id=f"user{i}", email=f"user{i}@abc.com"))
    session.commit()


def test_pagination(api, five_users) -> None:
    r = api("GET", "/user", {"page[limit]": "3"})
    assert len(r.body["data"]) == 3
    assert r.body["meta"]["total"] == 5
    assert r.body["links"] == {
        "self": "http://localhost/api/user",
        "first": "http://localhost/api/user?page%5Blimit%5D=3",
        "last": "http://localhost/api/user?page%5Boffset%5D=3",
        "prev": None,
        "next": "http://localhost/api/user?page%5Boffset%5D=3&page%5Blimit%5D=3",
    }

    r = api("GET", "/user", {"page[limit]": "3", "page[offset]": "3"})
    assert _ids(r) == ["user3", "user4"]
    assert r.body["links"]["prev"] == "http://localhost/api/user?page%5Boffset%5D=0&page%5Blimit%5D=3"
    assert r.body["links"]["next"] is None


@pytest.mark.parametrize("query, count", [({"page[limit]": "10"}, 5), ({"page[offset]": "10"}, 0), ({"page[offset]": "-1"}, 5), ({"page[limit]": "0"}, 5)])
def test_pagination_bounds(api, five_users, query, count: int) -> None:
    r = api("GET", "/user", query)
    assert len(r.body["data"]) == count
    assert r.body["links"]["first"] == "http://localhost/api/user?page%5Blimit%5D=5"
    assert r.body["links"]["last"] == "http://localhost/api/user?page%5Boffset%5D=0"
    assert r.body["links"]["prev"] is None
    assert r.body["links"]["next"] is None


def test_related_pagination(api, session) -> None:
    session.add(User(my_id="user1", email="user1@abc.com", posts=[Post(id=i, title=f"Post{i}") for i in range(10)]))
    session.commit()

    r = api("GET", "/user/user1/posts")
    assert len(r.body["data"]) == 5
    assert r.body["meta"]["total"] == 10
    assert r.body["links"]["last"] == "http://localhost/api/user/user1/posts?page%5Boffset%5D=5"

    r = api("GET", "/user/user1/relationships/posts", {"page[limit]": "3", "page[offset]": "8"})
    assert r.body["data"] == [{"type": "post", "id": 8}, {"type": "post", "id": 9}]
    assert r.body["links"] == {
        "self": "http://localhost/api/user/user1/relationships/posts",
        "first": "http://localhost/api/user/user1/relationships/posts?page%5Blimit%5D=3",
        "last": "http://localhost/api/user/user1/relationships/posts?page%5Boffset%5D=9",
        "prev": "http://localhost/api/user/user1/relationships/posts?page%5Boffset%5D=5&page%5Blimit%5D=3",
        "next": None,
    }


def test_pagination_disabled(model_meta, client, five_users) -> None:
    import asyncio
    import math

    from sarest import RequestHandler

    handler = RequestHandler(model_meta, "http://localhost/api", page_size=math.inf)
    r = asyncio.run(handler.handle_request(client, "GET", "/user", {"page[limit]": "2"}))
    assert len(r.body["data"]) == 5
    assert r.body["meta"]["total"] == 5
    assert "first" not in r.body["links"]


#
# POST
#
def test_create(api) -> None:
    r = api("POST", "/user", body={"data": {"type": "user", "attributes": {"my_id": "user1", "email": "user1@abc.com"}}})
    assert r.status == 201
    assert r.body["data"]["type"] == "user"
    assert r.body["data"]["id"] == "user1"
    assert r.body["data"]["attributes"] == {"email": "user1@abc.com"}
    assert r.body["data"]["relationships"]["posts"]["data"] == []


def test_create_generated_id(api) -> None:
    r = api("POST", "/user", body={"data": {"type": "user", "attributes": {"email": "a@b.com"}}})
    assert r.status == 201
    assert r.body["data"]["attributes"]["email"] == "a@b.com"
    assert r.body["data"]["id"]


def test_create_with_date_coercion(api) -> None:
    body = {"data": {"type": "post", "attributes": {"id": 1, "title": "Post1", "published": True, "published_at": "2024-03-02T05:00:00.000Z"}}}
    r = api("POST", "/post", body=body)
    assert r.status == 201
    assert r.body["data"]["attributes"]["published_at"] == "2024-03-02T05:00:00.000Z"
    assert r.body["meta"]["serialization"]["values"]["data.attributes.published_at"] == ["Date"]


def test_create_with_relations(api, session) -> None:
    session.add_all([User(my_id="user1", email="user1@abc.com"), Post(id=1, title="Post1"), Post(id=2, title="Post2")])
    session.commit()

    body = {
        "data": {
            "type": "user",
            "attributes": {"my_id": "user2", "email": "user2@abc.com"},
            "relationships": {"posts": {"data": [{"type": "post", "id": 1}, {"type": "post", "id": 2}]}},
        }
    }
    r = api("POST", "/user", body=body)
    assert r.status == 201
    assert r.body["data"]["relationships"]["posts"]["data"] == [{"type": "post", "id": 1}, {"type": "post", "id": 2}]

    body = {"data": {"type": "post", "attributes": {"title": "Post3"}, "relationships": {"author": {"data": {"type": "user", "id": "user1"}}}}}
    r = api("POST", "/post", body=body)
    assert r.status == 201
    assert r.body["data"]["relationships"]["author"]["data"] == {"type": "user", "id": "user1"}


def test_create_connect_missing_target(api) -> None:
    body = {"data": {"type": "post", "attributes": {"title": "Post1"}, "relationships": {"author": {"data": {"type": "user", "id": "nobody"}}}}}
    r = api("POST", "/post", body=body)
    assert r.status == 404
    assert r.body["errors"][0]["code"] == "not-found"


@pytest.mark.parametrize(
    "body, code",
    [
        (None, "invalid-payload"),
        ({"data": {"attributes": {"title": "x"}}}, "invalid-payload"),
        ({"data": {"type": "user", "attributes": {"title": "x"}}}, "invalid-payload"),
        ({"data": {"type": "post", "attributes": {"bogus": "x"}}}, "invalid-payload"),
        ({"data": {"type": "post", "attributes": {"author": "x"}}}, "invalid-payload"),
        ({"data": {"type": "post", "attributes": {"title": "x"}, "relationships": {"author": {}}}}, "invalid-payload"),
        ({"data": {"type": "post", "attributes": {"title": "x"}, "relationships": {"author": {"data": [{"type": "user", "id": "u"}]}}}}, "invalid-relation-data"),
        ({"data": {"type": "post", "attributes": {"title": "x"}, "relationships": {"author": {"data": {"type": "post", "id": "u"}}}}}, "invalid-relation"),
        ({"data": {"type": "post", "attributes": {"title": "x"}, "relationships": {"foo": {"data": None}}}}, "unsupported-relationship"),
        ({"data": {"type": "post", "attributes": {"title": "x", "published_at": "never"}}}, "invalid-value"),
    ],
)
def test_create_invalid_payload(api, body, code: str) -> None:
    r = api("POST", "/post", body=body)
    assert r.status == 400
    assert r.body["errors"][0]["code"] == code


def test_create_unique_violation(api, users) -> None:
    r = api("POST", "/user", body={"data": {"type": "user", "attributes": {"email": "user1@abc.com"}}})
    assert r.status == 400
    error = r.body["errors"][0]
    assert error["code"] == "db-error"
    assert error["dbCode"] == "P2002"
    assert error["title"] == "Database error"


def test_create_to_one_relationship_disallowed(api, users) -> None:
    r = api("POST", "/post/1/relationships/author", body={"data": {"type": "user", "id": "user1"}})
    assert r.status == 400
    assert r.body["errors"][0] == {"status": 400, "code": "invalid-verb", "title": "The HTTP verb is not supported", "detail": r.body["errors"][0]["detail"]}
    # the payload isn't looked at
    assert api("POST", "/post/1/relationships/author", body="garbage").body["errors"][0]["code"] == "invalid-verb"


def test_create_collection_of_relations(api, session) -> None:
    session.add_all([User(my_id="user1", email="user1@abc.com"), Post(id=1, title="Post1"), Post(id=2, title="Post2")])
    session.commit()
    r = api("POST", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 1}, {"type": "post", "id": 2}]})
    assert r.status == 200
    assert r.body["links"]["self"] == "http://localhost/api/user/user1/relationships/posts"
    assert r.body["data"] == [{"type": "post", "id": 1}, {"type": "post", "id": 2}]


def test_create_relation_for_missing_entity(api, session) -> None:
    r = api("POST", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 1}]})
    assert r.status == 404
    session.add(User(my_id="user1", email="user1@abc.com"))
    session.commit()
    r = api("POST", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 1}]})
    assert r.status == 404


#
# PUT / PATCH
#
def test_update(api, session) -> None:
    session.add_all([User(my_id="user1", email="user1@abc.com"), Post(id=1, title="Post1"), Post(id=2, title="Post2")])
    session.commit()
    body = {
        "data": {
            "type": "user",
            "attributes": {"email": "user2@abc.com"},
            "relationships": {"posts": {"data": [{"type": "post", "id": 1}, {"type": "post", "id": 2}]}},
        }
    }
    r = api("PUT", "/user/user1", body=body)
    assert r.status == 200
    assert r.body["links"]["self"] == "http://localhost/api/user/user1"
    assert r.body["data"]["attributes"] == {"email": "user2@abc.com"}
    assert r.body["data"]["relationships"]["posts"]["data"] == [{"type": "post", "id": 1}, {"type": "post", "id": 2}]

    r = api("PATCH", "/user/user1", body={"data": {"type": "user", "attributes": {}, "relationships": {"posts": {"data": [{"type": "post", "id": 2}]}}}})
    assert r.body["data"]["relationships"]["posts"]["data"] == [{"type": "post", "id": 2}]


def test_update_missing(api) -> None:
    r = api("PUT", "/user/nope", body={"data": {"type": "user", "attributes": {"email": "a@b.com"}}})
    assert r.status == 404
    assert r.body["errors"][0]["code"] == "not-found"


def test_update_to_one(api, users) -> None:
    r = api("PATCH", "/post/1", body={"data": {"type": "post", "relationships": {"author": {"data": {"type": "user", "id": "user2"}}}}})
    assert r.status == 200
    assert r.body["data"]["relationships"]["author"]["data"] == {"type": "user", "id": "user2"}
    r = api("PATCH", "/post/1", body={"data": {"type": "post", "relationships": {"author": {"data": None}}}})
    assert r.body["data"]["relationships"]["author"]["data"] is None


def test_update_single_relation(api, session) -> None:
    session.add_all([User(my_id="user1", email="user1@abc.com"), Post(id=1, title="Post1")])
    session.commit()
    r = api("PATCH", "/post/1/relationships/author", body={"data": {"type": "user", "id": "user1"}})
    assert r.status == 200
    assert r.body["links"]["self"] == "http://localhost/api/post/1/relationships/author"
    assert r.body["data"] == {"type": "user", "id": "user1"}

    r = api("PATCH", "/post/1/relationships/author", body={"data": None})
    assert r.status == 200
    assert r.body["data"] is None


def test_remove_required_relation(api, session) -> None:
    session.add(Post(id=1, title="Post1", comments=[Comment(id=1, content="c")]))
    session.commit()
    r = api("PATCH", "/comment/1/relationships/post", body={"data": None})
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-payload"


def test_update_collection_of_relations(api, session) -> None:
    session.add_all([User(my_id="user1", email="user1@abc.com", posts=[Post(id=1, title="Post1")]), Post(id=2, title="Post2")])
    session.commit()
    r = api("PATCH", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 2}]})
    assert r.status == 200
    assert r.body["data"] == [{"type": "post", "id": 2}]

    r = api("PATCH", "/user/user1/relationships/posts", body={"data": []})
    assert r.status == 200
    assert r.body["data"] == []


def test_update_relation_for_missing_entity(api, session) -> None:
    r = api("PATCH", "/post/1/relationships/author", body={"data": {"type": "user", "id": "user1"}})
    assert r.status == 404
    session.add(Post(id=1, title="Post1"))
    session.commit()
    r = api("PATCH", "/post/1/relationships/author", body={"data": {"type": "user", "id": "user1"}})
    assert r.status == 404


#
# DELETE
#
def test_delete(api, users) -> None:
    r = api("DELETE", "/post/1")
    assert r.status == 204
    assert r.body is None
    assert api("GET", "/post/1").status == 404


def test_delete_missing(api) -> None:
    r = api("DELETE", "/user/nonexistentuser")
    assert r.status == 404
    assert r.body == {"errors": [{"status": 404, "code": "not-found", "title": "Resource not found"}]}


def test_delete_to_one_relationship_disallowed(api, users) -> None:
    r = api("DELETE", "/post/1/relationships/author")
    assert r.status == 400
    assert r.body["errors"][0]["code"] == "invalid-verb"


def test_delete_collection_of_relations(api, session) -> None:
    session.add(User(my_id="user1", email="user1@abc.com", posts=[Post(id=1, title="Post1"), Post(id=2, title="Post2")]))
    session.commit()
    r = api("DELETE", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 1}]})
    assert r.status == 200
    assert r.body["links"]["self"] == "http://localhost/api/user/user1/relationships/posts"
    assert r.body["data"] == [{"type": "post", "id": 2}]


def test_delete_relations_for_missing_entity(api) -> None:
    r = api("DELETE", "/user/user1/relationships/posts", body={"data": [{"type": "post", "id": 1}]})
    assert r.status == 404


#
# field types
#
def test_field_types_roundtrip(api, session) -> None:
    created = {
        "id": 1,
        "string": "string",
        "int_value": 123,
        "big_int": "534543543534",
        "date": "2024-01-02T03:04:05.678Z",
        "float_value": 1.23,
        "decimal_value": "0.046875",
        "boolean": True,
        "bytes_value": "AQIDBA==",
    }
    meta = {
        "serialization": {
            "values": {
                "data.attributes.big_int": ["bigint"],
                "data.attributes.date": ["Date"],
                "data.attributes.decimal_value": [["custom", "Decimal"]],
                "data.attributes.bytes_value": [["custom", "Bytes"]],
            }
        }
    }
    r = api("POST", "/foo", body={"data": {"type": "foo", "attributes": created}, "meta": meta})
    assert r.status == 201
    attributes = r.body["data"]["attributes"]
    assert attributes["big_int"] == "534543543534"
    assert attributes["date"] == "2024-01-02T03:04:05.678Z"
    assert attributes["bytes_value"] == "AQIDBA=="

    foo = session.get(Foo, 1)
    assert foo.big_int == 534543543534
    assert foo.decimal_value == Decimal("0.046875")
    assert foo.bytes_value == b"\x01\x02\x03\x04"
    assert foo.date == datetime.datetime(2024, 1, 2, 3, 4, 5, 678000)

    r = api("PUT", "/foo/1", body={"data": {"type": "foo", "attributes": {"big_int": "1534543543534", "decimal_value": "0.0146875"}}})
    assert r.status == 200
    restored = deserialize(r.body, r.body["meta"]["serialization"])["data"]["attributes"]
    assert restored["big_int"] == 1534543543534
    assert restored["decimal_value"] == Decimal("0.0146875")
    assert restored["bytes_value"] == b"\x01\x02\x03\x04"
    assert restored["date"] == datetime.datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=datetime.timezone.utc)


#
# attribute schemas
#
def test_attribute_schemas(model_meta, client) -> None:
    import asyncio

    from pydantic import BaseModel, Field

    from sarest import RequestHandler

    class PostCreate(BaseModel):
        title: str = Field(min_length=3)
        view_count: int = 0

    handler = RequestHandler(model_meta, "http://localhost/api", schemas={"post": {"create": PostCreate}})

    def post(attributes):
        return asyncio.run(handler.handle_request(client, "POST", "/post", None, {"data": {"type": "post", "attributes": attributes}}))

    r = post({"title": "ab"})
    assert r.status == 422
    error = r.body["errors"][0]
    assert error["code"] == "invalid-payload"
    assert error["reason"] == "DATA_VALIDATION_VIOLATION"
    assert error["validationErrors"][0]["loc"] == ["title"]

    r = post({"title": "abc"})
    assert r.status == 201
    assert r.body["data"]["attributes"]["view_count"] == 0


def test_datetime_filter_with_offset(api) -> None:
    r = api("POST", "/foo", body={"data": {"type": "foo", "attributes": {"id": 1, "date": "2024-01-01T02:00:00+02:00"}}})
    assert r.status == 201
    assert r.body["data"]["attributes"]["date"] == "2024-01-01T00:00:00.000Z"

    for value in ("2024-01-01T02:00:00+02:00", "2024-01-01T00:00:00.000Z", "2023-12-31T19:00:00-05:00"):
        r = api("GET", "/foo", {"filter[date]": value})
        assert r.status == 200
        assert _ids(r) == [1]
    assert _ids(api("GET", "/foo", {"filter[date$gt]": "2024-01-01T01:00:00+02:00"})) == [1]
    assert _ids(api("GET", "/foo", {"filter[date$gt]": "2024-01-01T03:00:00+02:00"})) == []
