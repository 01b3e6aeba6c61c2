# src/spectral_store/query/translate.py
"""Turn a ReadingFilter into a parameterised SELECT over the reading/metadata tables.

The filter is first lowered into a small plan (joins + predicates) that knows
nothing about any backend, then rendered with a Dialect:

    plan = plan_query(flt)
    stmt = plan.render(dialect, columns=READING_COLUMNS)
    rows = conn.fetch_all(stmt.sql, stmt.params)

Every metadata field the filter touches gets exactly one alias (``sd0``,
``sd1``, ...) joined on ``owner_id = r.sample_id AND field_name = ?``, so a
range on one field and a required-presence check on another never share a
join.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from spectral_store.db.connection import METADATA_TABLE, READING_TABLE
from spectral_store.db.dialect import Dialect
from spectral_store.model.filters import ReadingFilter, SortKey, is_match_all
from spectral_store.model.metadata import DUMMY, INSERT_TIMESTAMP, INSTRUMENT

READING_ALIAS = "r"
READING_COLUMNS: tuple[str, ...] = (
    "r.db_id",
    "r.sample_id",
    "r.sample_type",
    "r.data_format",
    "r.points",
)


@dataclass(frozen=True)
class Join:
    alias: str
    field_name: str


@dataclass(frozen=True)
class RegexMatch:
    column: str
    pattern: str


@dataclass(frozen=True)
class Comparison:
    column: str
    op: str
    value: Any
    numeric: bool = False


Predicate = RegexMatch | Comparison


@dataclass(frozen=True)
class SelectStatement:
    select: str
    from_: str
    where: str
    order: str
    limit: str
    params: tuple[Any, ...] = ()

    @property
    def sql(self) -> str:
        parts = [f"SELECT {self.select}", f"FROM {self.from_}"]
        if self.where:
            parts.append(f"WHERE {self.where}")
        if self.order:
            parts.append(f"ORDER BY {self.order}")
        if self.limit:
            parts.append(self.limit)
        return " ".join(parts)

    def count_sql(self) -> str:
        """Same selection wrapped in COUNT(*), ignoring order."""
        inner = [f"SELECT {self.select}", f"FROM {self.from_}"]
        if self.where:
            inner.append(f"WHERE {self.where}")
        if self.limit:
            inner.append(self.limit)
        return "SELECT COUNT(*) FROM (" + " ".join(inner) + ") AS counted"


@dataclass
class QueryPlan:
    joins: list[Join] = field(default_factory=list)
    predicates: list[Predicate] = field(default_factory=list)
    order_by: str = f"{READING_ALIAS}.db_id"
    tie_breaker: bool = False
    descending: bool = False
    limit: int = -1

    def alias_for(self, field_name: str) -> str:
        """Return the alias joined for `field_name`, allocating it on first use."""
        for j in self.joins:
            if j.field_name == field_name:
                return j.alias
        alias = f"sd{len(self.joins)}"
        self.joins.append(Join(alias, field_name))
        return alias

    def render(self, dialect: Dialect, columns: Sequence[str] = READING_COLUMNS) -> SelectStatement:
        params: list[Any] = []

        from_parts = [f"{READING_TABLE} AS {READING_ALIAS}"]
        for j in self.joins:
            from_parts.append(
                f"JOIN {METADATA_TABLE} AS {j.alias} "
                f"ON {j.alias}.owner_id = {READING_ALIAS}.sample_id AND {j.alias}.field_name = ?"
            )
            params.append(j.field_name)

        where_parts: list[str] = []
        for p in self.predicates:
            if isinstance(p, RegexMatch):
                where_parts.append(dialect.regexp(p.column))
                params.append(p.pattern)
            else:
                col = dialect.to_number(p.column) if p.numeric else p.column
                where_parts.append(f"{col} {p.op} ?")
                params.append(p.value)

        direction = "DESC" if self.descending else "ASC"
        order = f"{self.order_by} {direction}"
        if self.tie_breaker:
            order += f", {READING_ALIAS}.db_id {direction}"

        return SelectStatement(
            select=", ".join(columns),
            from_=" ".join(from_parts),
            where=" AND ".join(where_parts),
            order=order,
            limit=dialect.limit(self.limit) if self.limit > 0 else "",
            params=tuple(params),
        )


def _value(alias: str) -> str:
    return f"{alias}.field_value"


def plan_query(flt: ReadingFilter) -> QueryPlan:
    """Lower a filter into joins and predicates. Raises FilterValidationError first."""
    flt = flt.normalized()
    plan = QueryPlan(limit=int(flt.limit), descending=bool(flt.latest))

    # reading-level regexes
    for column, regexp in (
        ("sample_id", flt.sample_id),
        ("sample_type", flt.sample_type),
        ("data_format", flt.data_format),
    ):
        if not is_match_all(regexp):
            plan.predicates.append(RegexMatch(f"{READING_ALIAS}.{column}", regexp))

    for rc in flt.ranges:
        alias = plan.alias_for(rc.field)
        if rc.has_minimum:
            plan.predicates.append(Comparison(_value(alias), ">=", float(rc.minimum), numeric=True))  # type: ignore[arg-type]
        if rc.has_maximum:
            plan.predicates.append(Comparison(_value(alias), "<=", float(rc.maximum), numeric=True))  # type: ignore[arg-type]

    # presence only: the inner join is the whole constraint
    for name in flt.required:
        plan.alias_for(name)

    if not is_match_all(flt.instrument):
        plan.predicates.append(RegexMatch(_value(plan.alias_for(INSTRUMENT)), flt.instrument))

    if flt.start_text is not None:
        plan.predicates.append(Comparison(_value(plan.alias_for(INSERT_TIMESTAMP)), ">=", flt.start_text))
    if flt.end_text is not None:
        plan.predicates.append(Comparison(_value(plan.alias_for(INSERT_TIMESTAMP)), "<=", flt.end_text))

    if flt.exclude_dummies or flt.only_dummies:
        plan.predicates.append(Comparison(_value(plan.alias_for(DUMMY)), "=", "true" if flt.only_dummies else "false"))

    if flt.sort_by is SortKey.INSERT_TIMESTAMP:
        plan.order_by = _value(plan.alias_for(INSERT_TIMESTAMP))
        plan.tie_breaker = True
    elif flt.sort_by is SortKey.SAMPLE_ID:
        plan.order_by = f"{READING_ALIAS}.sample_id"
        plan.tie_breaker = True

    return plan


def translate(flt: ReadingFilter, dialect: Dialect, columns: Sequence[str] = READING_COLUMNS) -> SelectStatement:
    return plan_query(flt).render(dialect, columns)
