import pytest

from emberorm.dialects import SQLiteDialect
from emberorm.errors import UnsupportedOperationError
from emberorm.query import MATCH_ALL, Condition, Junction, SQLCompiler, SQLFilter
from emberorm.query.predicates import OR


@pytest.fixture()
def compiler():
    return SQLCompiler(SQLiteDialect())


def test_comparisons_use_placeholders(compiler):
    assert compiler.compile_filter(Condition("age", "gte", 18)) == SQLFilter('"age" >= ?', (18,))
    assert compiler.compile_filter(Condition("name", "exact", "Ann")) == SQLFilter('"name" = ?', ("Ann",))


def test_null_comparisons(compiler):
    assert compiler.compile_filter(Condition("age", "exact", None)).sql == '"age" IS NULL'
    assert compiler.compile_filter(Condition("age", "isnull", False)).sql == '"age" IS NOT NULL'
    assert compiler.compile_filter(Condition("age", "not", 3)) == SQLFilter(
        '("age" IS NULL OR "age" <> ?)', (3,)
    )


def test_membership(compiler):
    assert compiler.compile_filter(Condition("id", "in", (1, 2))) == SQLFilter('"id" IN (?, ?)', (1, 2))
    assert compiler.compile_filter(Condition("id", "in", ())).sql == "0 = 1"
    assert compiler.compile_filter(Condition("age", "in", (3, None))) == SQLFilter(
        '"age" IN (?) OR "age" IS NULL', (3,)
    )
    assert compiler.compile_filter(Condition("age", "not_in", (3,))) == SQLFilter(
        '("age" IS NULL OR "age" NOT IN (?))', (3,)
    )


def test_string_lookups_are_case_sensitive_globs(compiler):
    assert compiler.compile_filter(Condition("title", "contains", "a*b")) == SQLFilter(
        '"title" GLOB ?', ("*a[*]b*",)
    )
    assert compiler.compile_filter(Condition("title", "startswith", "Py")).params == ("Py*",)
    assert compiler.compile_filter(Condition("title", "endswith", "?")).params == ("*[?]",)


def test_icontains_escapes_like_wildcards(compiler):
    compiled = compiler.compile_filter(Condition("title", "icontains", "50%"))

    assert compiled.sql == "lower(\"title\") LIKE lower(?) ESCAPE '\\'"
    assert compiled.params == ("%50\\%%",)


def test_negated_junction_treats_null_as_false(compiler):
    predicate = Junction(children=(Condition("age", "exact", 3),), negated=True)

    assert compiler.compile_filter(predicate) == SQLFilter('NOT COALESCE((("age" = ?)), 0)', (3,))


def test_junctions_and_empty_filters(compiler):
    predicate = Junction(OR, (Condition("a", "exact", 1), Condition("b", "lt", 2)))

    assert compiler.compile_filter(predicate) == SQLFilter('("a" = ?) OR ("b" < ?)', (1, 2))
    assert compiler.compile_filter(MATCH_ALL) == SQLFilter("")
    assert compiler.compile_filter(Junction(negated=True)).sql == "1 = 0"


def test_regex_is_not_compiled(compiler):
    with pytest.raises(UnsupportedOperationError):
        compiler.compile_filter(Condition("title", "regex", "^a"))


def test_statements(compiler):
    where = SQLFilter('"id" = ?', (4,))

    assert compiler.select("post", ["id", "title"], where, ("-id", "title"), 10, 5) == (
        'SELECT "id", "title" FROM "post" WHERE "id" = ? ORDER BY "id" DESC, "title" LIMIT 10 OFFSET 5',
        [4],
    )
    assert compiler.insert("post", {"title": "x"}) == ('INSERT INTO "post" ("title") VALUES (?)', ["x"])
    assert compiler.update("post", {"title": "y"}, where) == ('UPDATE "post" SET "title" = ? WHERE "id" = ?', ["y", 4])
    assert compiler.delete("post", SQLFilter("")) == ('DELETE FROM "post"', [])
