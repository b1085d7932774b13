import logging

import pytest

from emberorm import ABSENT, ConstraintViolationError, Engine, MemoryStore, NotFoundError, SQLiteStore, load, nested, query
from emberorm.errors import TypeMismatchError, UnsupportedOperationError

SCHEMA = load(
    """
    model User {
      id      Int      @id @default(autoincrement())
      name    String
      email   String   @unique
      posts   Post[]
      profile Profile?
    }

    model Profile {
      id     Int    @id @default(autoincrement())
      bio    String
      userId Int    @unique
      user   User   @relation(fields: [userId], references: [id])
    }

    model Post {
      id       Int    @id @default(autoincrement())
      title    String
      rank     Int    @default(0)
      authorId Int
      author   User   @relation(fields: [authorId], references: [id])
      tags     Tag[]
    }

    model Tag {
      id    Int    @id @default(autoincrement())
      label String @unique
      posts Post[]
    }
    """
)


@pytest.fixture(params=["memory", "sqlite"])
def engine(request, tmp_path):
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = SQLiteStore(f"sqlite:///{tmp_path / 'relations.db'}")
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    yield engine
    engine.close()


def seed(engine):
    alice = engine.create("User", {"name": "Alice", "email": "alice@example.com"})
    bob = engine.create("User", {"name": "Bob", "email": "bob@example.com"})
    engine.create("Profile", {"bio": "Writes about databases", "userId": alice.id})
    for rank, title in enumerate(["Intro", "Indexes", "Joins"], start=1):
        engine.create("Post", {"title": title, "rank": rank, "authorId": alice.id})
    engine.create("Post", {"title": "Hello", "rank": 1, "authorId": bob.id})
    return alice, bob


def test_include_many_to_one(engine):
    alice = engine.create("User", {"name": "Alice", "email": "alice@example.com"})
    engine.create("Post", {"title": "Hi", "authorId": alice.id})

    posts = query(SCHEMA, "Post").include("author").execute(engine)

    assert len(posts) == 1
    assert posts[0].author == alice
    assert posts[0].to_dict()["author"]["name"] == "Alice"


def test_include_one_to_many_groups_by_parent(engine):
    seed(engine)

    users = query(SCHEMA, "User").include("posts").order_by("id").execute(engine)

    assert [len(user.posts) for user in users] == [3, 1]
    assert all(post.authorId == users[0].id for post in users[0].posts)


def test_include_one_to_one_in_both_directions(engine):
    alice, bob = seed(engine)

    users = query(SCHEMA, "User").include("profile").order_by("id").execute(engine)
    profiles = query(SCHEMA, "Profile").include("user").execute(engine)

    assert users[0].profile.bio == "Writes about databases"
    assert users[1].profile is None
    assert profiles[0].user == alice


def test_includes_are_batched_per_relation(engine):
    seed(engine)
    engine.stats.reset()

    query(SCHEMA, "User").include("posts__author").include("profile").execute(engine)

    # users, posts, authors of posts, profiles
    assert engine.stats.total_calls() == 4


def test_nested_include_options_apply_per_parent(engine):
    seed(engine)

    users = (
        query(SCHEMA, "User")
        .include("posts", nested().filter(title__startswith="I").order_by("-rank").limit(1))
        .order_by("id")
        .execute(engine)
    )

    assert [post.title for post in users[0].posts] == ["Indexes"]
    assert users[1].posts == ()


def test_nested_include_offset(engine):
    seed(engine)

    users = (
        query(SCHEMA, "User")
        .filter(name="Alice")
        .include("posts", nested().order_by("rank").offset(1))
        .execute(engine)
    )

    assert [post.title for post in users[0].posts] == ["Indexes", "Joins"]


def test_nested_includes_resolve_depth_first(engine):
    seed(engine)

    users = query(SCHEMA, "User").filter(name="Bob").include("posts__author__profile").execute(engine)

    post = users[0].posts[0]
    assert post.author.name == "Bob"
    assert post.author.profile is None


def test_empty_parent_set_skips_relation_fetches(engine):
    engine.stats.reset()

    users = query(SCHEMA, "User").include("posts").execute(engine)

    assert users == ()
    assert engine.stats.total_calls() == 1


def test_many_to_many_connect_include_disconnect(engine):
    alice, _ = seed(engine)
    post = engine.find_first("Post", {"title": "Intro"})
    sql = engine.create("Tag", {"label": "sql"})
    orm = engine.create("Tag", {"label": "orm"})

    assert engine.connect("Post", post.id, "tags", [sql.id, orm.id]) == 2
    assert engine.connect("Post", post.id, "tags", [sql.id]) == 0

    loaded = query(SCHEMA, "Post").filter(id=post.id).include("tags", nested().order_by("label")).execute(engine)
    assert [tag.label for tag in loaded[0].tags] == ["orm", "sql"]

    tagged = query(SCHEMA, "Tag").filter(label="sql").include("posts").execute(engine)
    assert [p.title for p in tagged[0].posts] == ["Intro"]

    by_tag = query(SCHEMA, "Post").filter(tags__label="orm").execute(engine)
    assert [p.title for p in by_tag] == ["Intro"]

    assert engine.disconnect("Post", post.id, "tags", [sql.id]) == 1
    loaded = query(SCHEMA, "Post").filter(id=post.id).include("tags").execute(engine)
    assert [tag.label for tag in loaded[0].tags] == ["orm"]


def test_connect_validates_targets(engine):
    seed(engine)
    post = engine.find_first("Post", {"title": "Intro"})

    with pytest.raises(NotFoundError):
        engine.connect("Post", post.id, "tags", [42])
    with pytest.raises(UnsupportedOperationError):
        engine.connect("Post", post.id, "author", [1])


def test_deleting_record_removes_its_links(engine):
    seed(engine)
    post = engine.find_first("Post", {"title": "Intro"})
    tag = engine.create("Tag", {"label": "sql"})
    engine.connect("Post", post.id, "tags", [tag.id])

    assert engine.delete("Post", {"id": post.id}) == 1

    tags = query(SCHEMA, "Tag").include("posts").execute(engine)
    assert tags[0].posts == ()


def test_sqlite_refuses_to_orphan_rows(tmp_path):
    store = SQLiteStore(f"sqlite:///{tmp_path / 'fk.db'}")
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    alice, _ = seed(engine)

    with pytest.raises(ConstraintViolationError):
        engine.delete("User", {"id": alice.id})
    assert engine.count("Post", {"authorId": alice.id}) == 3
    engine.close()


def test_dangling_reference_resolves_to_absent(caplog):
    caplog.set_level(logging.WARNING, logger="emberorm.engine.resolver")
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    alice = engine.create("User", {"name": "Alice", "email": "alice@example.com"})
    engine.create("Post", {"title": "Kept", "authorId": alice.id})
    store.write_row("post", {"title": "Orphan", "rank": 0, "authorId": 77})

    posts = query(SCHEMA, "Post").include("author").order_by("id").execute(engine)

    assert posts[0].author == alice
    assert posts[1].author is ABSENT
    assert posts[1].to_dict()["author"] is None
    assert any("Dangling reference" in record.message for record in caplog.records)


def test_type_mismatch_rows_are_collected(caplog):
    caplog.set_level(logging.WARNING, logger="emberorm.engine.mapper")
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    alice = engine.create("User", {"name": "Alice", "email": "alice@example.com"})
    engine.create("Post", {"title": "Good", "authorId": alice.id})
    store.write_row("post", {"title": "Bad", "rank": "high", "authorId": alice.id})

    posts = engine.find_many("Post")

    assert [post.title for post in posts] == ["Good"]
    assert len(posts.errors) == 1
    error = posts.errors[0]
    assert isinstance(error, TypeMismatchError)
    assert (error.model, error.field, error.value) == ("Post", "rank", "high")

    users = query(SCHEMA, "User").include("posts").execute(engine)
    assert [post.title for post in users[0].posts] == ["Good"]
    assert len(users.errors) == 1


def test_sqlite_type_mismatch_is_reported(tmp_path):
    store = SQLiteStore(f"sqlite:///{tmp_path / 'mismatch.db'}")
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    alice = engine.create("User", {"name": "Alice", "email": "alice@example.com"})
    store.write_row("post", {"title": "Bad", "rank": "high", "authorId": alice.id})

    posts = engine.find_many("Post")

    assert posts == ()
    assert [error.field for error in posts.errors] == ["rank"]
    engine.close()
