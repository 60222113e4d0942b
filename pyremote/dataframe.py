"""Typed handles for a distributed data-processing engine.

Each class fixes the category (and so the variable prefix) of the objects it
stands for, and maps Python method names onto the engine's camelCase
methods. Methods fall into three groups:

- derivations return a new typed handle (``df.filter(...)`` -> DataFrame);
- actions return a future of the engine output (``df.count()``);
- retrievals return a future of a JSON-decoded value (``df.columns()``).

None of these classes knows what the operations mean; the engine does.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ._internal.handle import RemoteHandle
from ._internal.statement import Expression

__all__ = [
    "SparkContext",
    "SQLContext",
    "DataFrame",
    "Column",
    "GroupedData",
    "Row",
    "RDD",
    "PrefixSpan",
    "PrefixSpanModel",
]


class SparkContext(RemoteHandle):
    """Entry point object of the engine session (usually bound as ``sc``)."""

    category = "SparkContext"

    def text_file(self, path: str, min_partitions: int | None = None) -> RDD:
        if min_partitions is None:
            return self._derive(RDD, "textFile", path)
        return self._derive(RDD, "textFile", path, min_partitions)

    def parallelize(self, data: list[Any], num_slices: int | None = None) -> RDD:
        if num_slices is None:
            return self._derive(RDD, "parallelize", data)
        return self._derive(RDD, "parallelize", data, num_slices)

    def stop(self) -> asyncio.Future[Any]:
        return self.action("stop")


class SQLContext(RemoteHandle):
    category = "SQLContext"

    def create_data_frame(self, rows: Any, schema: Any) -> DataFrame:
        return self._derive(DataFrame, "createDataFrame", rows, schema)

    def sql(self, query: str) -> DataFrame:
        return self._derive(DataFrame, "sql", query)

    def table(self, name: str) -> DataFrame:
        return self._derive(DataFrame, "table", name)


class Column(RemoteHandle):
    category = "Column"

    def gt(self, other: Any) -> Column:
        return self._derive(Column, "gt", other)

    def lt(self, other: Any) -> Column:
        return self._derive(Column, "lt", other)

    def geq(self, other: Any) -> Column:
        return self._derive(Column, "geq", other)

    def leq(self, other: Any) -> Column:
        return self._derive(Column, "leq", other)

    def equal_to(self, other: Any) -> Column:
        return self._derive(Column, "equalTo", other)

    def and_(self, other: Any) -> Column:
        return self._derive(Column, "and", other)

    def or_(self, other: Any) -> Column:
        return self._derive(Column, "or", other)

    def alias(self, name: str) -> Column:
        return self._derive(Column, "as", name)

    def asc(self) -> Column:
        return self._derive(Column, "asc")

    def desc(self) -> Column:
        return self._derive(Column, "desc")


class Row(RemoteHandle):
    category = "Row"

    def get(self, index: int) -> asyncio.Future[Any]:
        return self.action("get", index)

    def get_string(self, index: int) -> asyncio.Future[Any]:
        return self.action("getString", index)

    def length(self) -> asyncio.Future[Any]:
        return self.action("length")


class RDD(RemoteHandle):
    category = "RDD"

    def map(self, func: Any) -> RDD:
        return self._derive(RDD, "map", func)

    def flat_map(self, func: Any) -> RDD:
        return self._derive(RDD, "flatMap", func)

    def filter(self, func: Any) -> RDD:
        return self._derive(RDD, "filter", func)

    def cache(self) -> RDD:
        return self._derive(RDD, "cache")

    def count(self) -> asyncio.Future[Any]:
        return self.action("count")

    def collect(self) -> asyncio.Future[Any]:
        return self.retrieve("collect")

    def take(self, num: int) -> asyncio.Future[Any]:
        return self.retrieve("take", num)


class GroupedData(RemoteHandle):
    category = "GroupedData"

    def agg(self, *exprs: Any) -> DataFrame:
        return self._derive(DataFrame, "agg", *exprs)

    def count(self) -> DataFrame:
        return self._derive(DataFrame, "count")

    def avg(self, *cols: str) -> DataFrame:
        return self._derive(DataFrame, "avg", *cols)

    def max(self, *cols: str) -> DataFrame:
        return self._derive(DataFrame, "max", *cols)

    def min(self, *cols: str) -> DataFrame:
        return self._derive(DataFrame, "min", *cols)

    def sum(self, *cols: str) -> DataFrame:
        return self._derive(DataFrame, "sum", *cols)


class DataFrame(RemoteHandle):
    """Handle to a distributed table.

    Column arguments may be plain names, :class:`Column` handles, or
    deferred column expressions from :meth:`col_expr`.
    """

    category = "DataFrame"

    # derivations

    def agg(self, exprs: dict[str, str]) -> DataFrame:
        return self._derive(DataFrame, "agg", exprs)

    def alias(self, name: str) -> DataFrame:
        return self._derive(DataFrame, "as", name)

    def apply(self, col_name: str) -> Column:
        return self._derive(Column, "apply", col_name)

    def cache(self) -> DataFrame:
        return self._derive(DataFrame, "cache")

    def coalesce(self, num_partitions: int) -> DataFrame:
        return self._derive(DataFrame, "coalesce", num_partitions)

    def col(self, col_name: str) -> Column:
        return self._derive(Column, "col", col_name)

    def col_expr(self, col_name: str) -> Expression:
        """Deferred ``col()``: emitted only when first used as an argument."""
        return self.defer("col", col_name, handle_type=Column)

    def cube(self, *cols: Any) -> GroupedData:
        return self._derive(GroupedData, "cube", *cols)

    def describe(self, *cols: str) -> DataFrame:
        return self._derive(DataFrame, "describe", *cols)

    def distinct(self) -> DataFrame:
        return self._derive(DataFrame, "distinct")

    def drop(self, col: Any) -> DataFrame:
        return self._derive(DataFrame, "drop", col)

    def drop_duplicates(self, cols: list[str] | None = None) -> DataFrame:
        if cols is None:
            return self._derive(DataFrame, "dropDuplicates")
        return self._derive(DataFrame, "dropDuplicates", cols)

    def filter(self, condition: Any) -> DataFrame:
        return self._derive(DataFrame, "filter", condition)

    def flat_map(self, func: Any) -> RDD:
        return self._derive(RDD, "flatMap", func)

    def group_by(self, *cols: Any) -> GroupedData:
        return self._derive(GroupedData, "groupBy", *cols)

    def head(self) -> Row:
        return self._derive(Row, "head")

    def limit(self, num: int) -> DataFrame:
        return self._derive(DataFrame, "limit", num)

    def map(self, func: Any) -> RDD:
        return self._derive(RDD, "map", func)

    def select(self, *cols: Any) -> DataFrame:
        return self._derive(DataFrame, "select", *cols)

    def to_rdd(self) -> RDD:
        return self._derive(RDD, "toRDD")

    def where(self, condition: Any) -> DataFrame:
        return self._derive(DataFrame, "where", condition)

    # actions

    def count(self) -> asyncio.Future[Any]:
        return self.action("count")

    def register_temp_table(self, table_name: str) -> asyncio.Future[Any]:
        return self.action("registerTempTable", table_name)

    # retrievals

    def collect(self) -> asyncio.Future[Any]:
        return self.retrieve("collect")

    def columns(self) -> asyncio.Future[Any]:
        return self.retrieve("columns")

    def dtypes(self) -> asyncio.Future[Any]:
        return self.retrieve("dtypes")

    def take(self, num: int) -> asyncio.Future[Any]:
        return self.retrieve("take", num)


class PrefixSpanModel(RemoteHandle):
    category = "PrefixSpanModel"

    def freq_sequences(self) -> RDD:
        return self._derive(RDD, "freqSequences")


class PrefixSpan(RemoteHandle):
    """Frequent sequential pattern miner, built with ``session.construct``.

    Setters return a new handle each, so calls chain::

        ps = session.construct("PrefixSpan", handle_type=PrefixSpan)
        model = ps.set_min_support(0.5).set_max_pattern_length(5).run(sequences)
    """

    category = "PrefixSpan"

    def set_min_support(self, min_support: float) -> PrefixSpan:
        return self._derive(PrefixSpan, "setMinSupport", min_support)

    def set_max_pattern_length(self, length: int) -> PrefixSpan:
        return self._derive(PrefixSpan, "setMaxPatternLength", length)

    def set_max_local_proj_db_size(self, size: int) -> PrefixSpan:
        return self._derive(PrefixSpan, "setMaxLocalProjDBSize", size)

    def run(self, data: RDD) -> PrefixSpanModel:
        return self._derive(PrefixSpanModel, "run", data)
