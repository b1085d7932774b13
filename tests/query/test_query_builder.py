import pytest

from emberorm import EngineConfig, NotFoundError, Q, QueryTooDeepError, load, nested, query
from emberorm.errors import UnsupportedOperationError
from emberorm.query import Include, QueryDescriptor
from emberorm.query.predicates import AND, OR, split_lookup

SCHEMA = load(
    """
    model User {
      id      Int      @id @default(autoincrement())
      name    String
      posts   Post[]
      profile Profile?
    }

    model Profile {
      id     Int    @id
      bio    String
      userId Int    @unique
      user   User   @relation(fields: [userId], references: [id])
    }

    model Post {
      id       Int    @id @default(autoincrement())
      title    String
      authorId Int
      author   User   @relation(fields: [authorId], references: [id])
    }
    """
)


def test_builder_calls_return_new_builders():
    base = query(SCHEMA, "Post")
    filtered = base.filter(title="Hello")

    assert base.build().where.is_empty()
    assert list(filtered.build().where.iter_lookups()) == [("title", "Hello")]


def test_build_produces_descriptor_with_all_parts():
    descriptor = (
        query(SCHEMA, "Post")
        .filter(title__contains="orm")
        .select("title")
        .include("author")
        .order_by("-id")
        .limit(5)
        .offset(10)
        .build()
    )

    assert isinstance(descriptor, QueryDescriptor)
    assert descriptor.model == "Post"
    assert descriptor.projection == ("title",)
    assert descriptor.includes == (Include("author"),)
    assert descriptor.ordering == ("-id",)
    assert (descriptor.limit, descriptor.offset) == (5, 10)


def test_unknown_model_is_rejected_immediately():
    with pytest.raises(NotFoundError):
        query(SCHEMA, "Comment")


def test_unknown_names_fail_at_build():
    with pytest.raises(NotFoundError):
        query(SCHEMA, "User").filter(nickname="x").build()
    with pytest.raises(NotFoundError):
        query(SCHEMA, "User").include("comments").build()
    with pytest.raises(NotFoundError):
        query(SCHEMA, "User").order_by("-age").build()
    with pytest.raises(NotFoundError):
        query(SCHEMA, "Post").filter(author__nickname="x").build()


def test_filter_on_bare_relation_is_unsupported():
    with pytest.raises(UnsupportedOperationError):
        query(SCHEMA, "Post").filter(author=1).build()


def test_include_depth_is_checked_when_added():
    builder = query(SCHEMA, "User", config=EngineConfig()).include("posts__author__posts")
    assert builder.build().include_depth == 3

    with pytest.raises(QueryTooDeepError) as excinfo:
        builder.include("posts__author__posts__author")
    assert excinfo.value.depth == 4
    assert excinfo.value.maximum == 3


def test_configured_depth_limit():
    config = EngineConfig(max_include_depth=1)

    with pytest.raises(QueryTooDeepError):
        query(SCHEMA, "User", config=config).include("posts__author")


def test_unconfigured_builder_leaves_depth_to_the_engine():
    descriptor = query(SCHEMA, "User").include("posts__author__posts__author").build()

    assert descriptor.include_depth == 4


def test_include_paths_merge_into_one_tree():
    descriptor = query(SCHEMA, "User").include("posts").include("posts__author").include("profile").build()

    posts, profile = descriptor.includes
    assert posts.relation == "posts"
    assert [child.relation for child in posts.children] == ["author"]
    assert profile.relation == "profile"


def test_nested_include_options():
    options = nested().filter(title__startswith="A").order_by("-id").limit(2).offset(1).include("author")
    descriptor = query(SCHEMA, "User").include("posts", options).build()

    include = descriptor.includes[0]
    assert include.where == Q(title__startswith="A")
    assert include.ordering == ("-id",)
    assert (include.limit, include.offset) == (2, 1)
    assert include.children == (Include("author"),)


def test_options_on_to_one_include_are_unsupported():
    with pytest.raises(UnsupportedOperationError):
        query(SCHEMA, "Post").include("author", nested().filter(name="Ann")).build()


def test_negative_pagination_is_rejected():
    with pytest.raises(ValueError):
        query(SCHEMA, "Post").limit(-1)
    with pytest.raises(ValueError):
        query(SCHEMA, "Post").offset(-3)


def test_q_composition():
    either = Q(name="a") | Q(name="b")
    assert either.connector == OR
    assert len(either.children) == 2

    negated = ~either
    assert negated.negated
    assert not either.negated

    both = Q(name="a") & Q(id__gt=1)
    assert both.connector == AND
    assert (Q() & both) == both
    assert (both | Q()) == both


def test_split_lookup():
    assert split_lookup("name") == (["name"], "exact")
    assert split_lookup("name__icontains") == (["name"], "icontains")
    assert split_lookup("author__name__startswith") == (["author", "name"], "startswith")
    assert split_lookup("author__name") == (["author", "name"], "exact")


def test_descriptor_rejects_unknown_operation():
    with pytest.raises(ValueError):
        QueryDescriptor(model="User", operation="upsert")
