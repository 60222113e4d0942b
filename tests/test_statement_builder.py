"""Tests for statement synthesis.

These tests use the builder directly, without a session or channel, so
references are plain RemoteRef stand-ins.
"""

import inspect
import textwrap

import pytest

from pyremote import BuildError, SourceFragment
from pyremote._internal.naming import NameAllocator
from pyremote._internal.statement import CallKind, Expression, RemoteRef, StatementBuilder


class Ref(RemoteRef):
    def __init__(self, name, session=None):
        self.name = name
        self.session = session

    def __repr__(self):
        return f"<Ref {self.name}>"


@pytest.fixture
def allocator():
    return NameAllocator()


@pytest.fixture
def builder(allocator):
    return StatementBuilder(allocator)


@pytest.fixture
def df():
    return Ref("dataFrame1")


def only(statements):
    assert len(statements) == 1
    return statements[0]


class TestStatementShapes:
    def test_assign_allocates_name_for_category(self, builder, df):
        stmt = only(builder.build(df, "cache", kind=CallKind.ASSIGN, category="DataFrame"))

        assert stmt.result_name == "dataFrame1"
        assert stmt.text == "var dataFrame1 = dataFrame1.cache();"
        assert stmt.retains_result

    def test_action_has_no_var_prefix(self, builder, df):
        stmt = only(builder.build(df, "count"))

        assert stmt.result_name is None
        assert stmt.text == "dataFrame1.count();"
        assert not stmt.retains_result

    def test_retrieve_wraps_in_json_stringify(self, builder, df):
        stmt = only(builder.build(df, "columns", kind=CallKind.RETRIEVE))

        assert stmt.result_name is None
        assert stmt.text == "JSON.stringify(dataFrame1.columns());"

    def test_constructor(self, builder):
        stmt = only(builder.build_constructor("PrefixSpan", category="PrefixSpan"))

        assert stmt.text == "var prefixSpan1 = new PrefixSpan();"

    def test_constructor_with_dotted_class_and_args(self, builder):
        sc = Ref("sc")
        stmt = only(builder.build_constructor("spark.SQLContext", [sc], category="SQLContext"))

        assert stmt.text == "var sqlContext1 = new spark.SQLContext(sc);"

    def test_string_receiver_for_engine_globals(self, builder):
        stmt = only(builder.build("sc", "textFile", ["/tmp/dream.txt"], kind=CallKind.ASSIGN, category="RDD"))

        assert stmt.text == 'var rdd1 = sc.textFile("/tmp/dream.txt");'

    def test_assign_without_category_is_rejected(self, builder, df):
        with pytest.raises(BuildError):
            builder.build(df, "cache", kind=CallKind.ASSIGN)

    def test_action_with_category_is_rejected(self, builder, df):
        with pytest.raises(BuildError):
            builder.build(df, "count", category="DataFrame")

    @pytest.mark.parametrize("method", ["", "group by", "1col", None])
    def test_invalid_method_name(self, builder, df, method):
        with pytest.raises(BuildError):
            builder.build(df, method)

    def test_invalid_receiver(self, builder):
        with pytest.raises(BuildError):
            builder.build("sc; drop()", "count")
        with pytest.raises(BuildError):
            builder.build(42, "count")


class TestLiteralRendering:
    def test_string_stays_quoted(self, builder, df):
        stmt = only(builder.build(df, "filter", ["age > 20"], kind=CallKind.ASSIGN, category="DataFrame"))

        assert stmt.text == 'var dataFrame1 = dataFrame1.filter("age > 20");'

    def test_list_stays_bracketed(self, builder, df):
        stmt = only(builder.build(df, "dropDuplicates", [["name"]], kind=CallKind.ASSIGN, category="DataFrame"))

        assert stmt.text == 'var dataFrame1 = dataFrame1.dropDuplicates(["name"]);'

    def test_mapping_is_compact_and_ordered(self, builder, df):
        stmt = only(
            builder.build(df, "agg", [{"age": "max", "expense": "sum"}], kind=CallKind.ASSIGN, category="DataFrame")
        )

        assert stmt.text == 'var dataFrame1 = dataFrame1.agg({"age":"max","expense":"sum"});'

    def test_multiple_args_comma_joined_without_spaces(self, builder, df):
        stmt = only(builder.build(df, "select", ["name", "age"], kind=CallKind.ASSIGN, category="DataFrame"))

        assert stmt.text == 'var dataFrame1 = dataFrame1.select("name","age");'

    def test_numbers_unquoted(self, builder, df):
        assert only(builder.build(df, "take", [10], kind=CallKind.RETRIEVE)).text == (
            "JSON.stringify(dataFrame1.take(10));"
        )
        assert only(builder.build(df, "sample", [0.5])).text == "dataFrame1.sample(0.5);"

    def test_booleans_and_null(self, builder, df):
        stmt = only(builder.build(df, "show", [True, False, None]))

        assert stmt.text == "dataFrame1.show(true,false,null);"

    def test_tuple_renders_as_array(self, builder, df):
        stmt = only(builder.build(df, "f", [(1, "a")]))

        assert stmt.text == 'dataFrame1.f([1,"a"]);'

    def test_string_escaping(self, builder, df):
        stmt = only(builder.build(df, "f", ['say "hi"\n']))

        assert stmt.text == r'dataFrame1.f("say \"hi\"\n");'

    def test_non_ascii_kept_verbatim(self, builder, df):
        stmt = only(builder.build(df, "f", ["héllo"]))

        assert stmt.text == 'dataFrame1.f("héllo");'

    def test_handles_render_as_names(self, builder, df):
        col = Ref("column3")
        stmt = only(builder.build(df, "filter", [col], kind=CallKind.ASSIGN, category="DataFrame"))

        assert stmt.text == "var dataFrame1 = dataFrame1.filter(column3);"

    def test_handles_nested_in_containers(self, builder, df):
        stmt = only(builder.build(df, "f", [[Ref("column1"), {"c": Ref("column2")}]]))

        assert stmt.text == 'dataFrame1.f([column1,{"c":column2}]);'

    @pytest.mark.parametrize(
        "value",
        [float("nan"), float("inf"), {1: "a"}, {"a"}, b"raw", object(), int],
    )
    def test_unsupported_literals_fail_synchronously(self, builder, df, value):
        with pytest.raises(BuildError):
            builder.build(df, "f", [value])

    def test_failed_build_allocates_no_names(self, builder, allocator, df):
        inner = Expression(None, df, "col", ["age"], "Column")

        with pytest.raises(BuildError):
            builder.build(df, "filter", [inner, object()], kind=CallKind.ASSIGN, category="DataFrame")

        assert allocator.peek("Column") == 0
        assert allocator.peek("DataFrame") == 0


class TestFunctionBodies:
    def test_source_fragment_reproduced_byte_for_byte(self, builder, df):
        body = (
            "function (row) {\n"
            "            var r = [];\n"
            "            r.push(row.getString(0));\n"
            "            return r\n"
            "          }"
        )

        stmt = only(builder.build(df, "flatMap", [SourceFragment(body)], kind=CallKind.ASSIGN, category="RDD"))

        assert stmt.text == f"var rdd1 = dataFrame1.flatMap({body});"

    def test_python_callable_captured_from_source(self, builder, df):
        def parse(line):
            parts = line.split(",")

            return parts   # keep  spacing

        expected = textwrap.dedent(inspect.getsource(parse))[:-1]

        stmt = only(builder.build(df, "map", [parse], kind=CallKind.ASSIGN, category="RDD"))

        assert stmt.text == f"var rdd1 = dataFrame1.map({expected});"
        assert "return parts   # keep  spacing" in stmt.text

    def test_nested_def_is_dedented(self, builder, df):
        def to_name(row):
            return row.getString(0)

        stmt = only(builder.build(df, "map", [to_name], kind=CallKind.ASSIGN, category="RDD"))

        assert stmt.text == "var rdd1 = dataFrame1.map(def to_name(row):\n    return row.getString(0));"

    def test_lambda_is_build_error(self, builder, allocator, df):
        with pytest.raises(BuildError, match="source"):
            builder.build(df, "map", [lambda row: row], kind=CallKind.ASSIGN, category="RDD")

        assert allocator.peek("RDD") == 0

    def test_lambda_nested_in_list_is_build_error(self, builder, df):
        with pytest.raises(BuildError):
            builder.build(df, "f", [[lambda row: row]])

    def test_callable_without_source_is_build_error(self, builder, df):
        with pytest.raises(BuildError):
            builder.build(df, "map", [len])

    def test_from_callable(self):
        def f(x):
            return x

        fragment = SourceFragment.from_callable(f)

        assert fragment.text == "def f(x):\n    return x"
        assert not fragment.text.endswith("\n")
        assert str(fragment) == fragment.text


class TestDeferredExpressions:
    def test_inner_expression_emitted_before_outer(self, builder, df):
        col = Expression(None, df, "col", ["age"], "Column")
        cond = col.defer("gt", "20", category="Column")

        statements = builder.build(df, "filter", [cond], kind=CallKind.ASSIGN, category="DataFrame")

        assert [s.text for s in statements] == [
            'var column1 = dataFrame1.col("age");',
            'var column2 = column1.gt("20");',
            "var dataFrame1 = dataFrame1.filter(column2);",
        ]
        assert statements[0].expression is col
        assert statements[1].expression is cond
        assert statements[2].expression is None

    def test_sibling_arguments_emitted_left_to_right(self, builder, df):
        name = Expression(None, df, "col", ["name"], "Column")
        age = Expression(None, df, "col", ["age"], "Column")

        statements = builder.build(df, "select", [name, age], kind=CallKind.ASSIGN, category="DataFrame")

        assert [s.text for s in statements] == [
            'var column1 = dataFrame1.col("name");',
            'var column2 = dataFrame1.col("age");',
            "var dataFrame1 = dataFrame1.select(column1,column2);",
        ]

    def test_receiver_emitted_before_arguments(self, builder, df):
        grouped = Expression(None, df, "groupBy", ["name"], "GroupedData")
        col = Expression(None, df, "col", ["age"], "Column")

        statements = builder.build(grouped, "agg", [col], kind=CallKind.ASSIGN, category="DataFrame")

        assert [s.result_name for s in statements] == ["groupedData1", "column1", "dataFrame1"]

    def test_expression_used_twice_is_emitted_once(self, builder, df):
        col = Expression(None, df, "col", ["age"], "Column")

        statements = builder.build(df, "f", [col, [col]])

        assert [s.text for s in statements] == [
            'var column1 = dataFrame1.col("age");',
            "dataFrame1.f(column1,[column1]);",
        ]

    def test_bound_expression_renders_as_handle_name(self, builder, df):
        col = Expression(None, df, "col", ["age"], "Column")
        col._bind(Ref("column7"))

        statements = builder.build(df, "filter", [col], kind=CallKind.ASSIGN, category="DataFrame")

        assert [s.text for s in statements] == ["var dataFrame1 = dataFrame1.filter(column7);"]


class TestSessionScoping:
    def test_reference_from_other_session_rejected(self, allocator):
        mine, theirs = object(), object()
        builder = StatementBuilder(allocator, mine)

        with pytest.raises(BuildError):
            builder.build(Ref("df1", mine), "filter", [Ref("column1", theirs)])

    def test_reference_from_same_session_accepted(self, allocator):
        mine = object()
        builder = StatementBuilder(allocator, mine)

        statements = builder.build(Ref("df1", mine), "filter", [Ref("column1", mine)])

        assert statements[0].text == "df1.filter(column1);"
