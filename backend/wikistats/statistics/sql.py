"""Dialect-aware SQL constructs the generator needs beyond SQLAlchemy's generic functions.

The tools database runs MariaDB; tests run SQLite. Day differences and
multi-argument min/max are spelled differently on each, so they are
compiled per dialect here instead of being written as raw SQL strings.
"""

from sqlalchemy import Date, type_coerce
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import Integer


class days_between(FunctionElement):
    """Whole calendar days from the second argument to the first, ignoring time of day."""
    type = Integer()
    name = "days_between"
    inherit_cache = True


@compiles(days_between)
def _days_between_default(element, compiler, **kw):
    later, earlier = list(element.clauses)
    return f"DATEDIFF({compiler.process(later, **kw)}, {compiler.process(earlier, **kw)})"


@compiles(days_between, "sqlite")
def _days_between_sqlite(element, compiler, **kw):
    later, earlier = list(element.clauses)
    return (
        f"CAST(julianday(date({compiler.process(later, **kw)})) "
        f"- julianday(date({compiler.process(earlier, **kw)})) AS INTEGER)"
    )


@compiles(days_between, "postgresql")
def _days_between_postgresql(element, compiler, **kw):
    later, earlier = list(element.clauses)
    return f"(CAST({compiler.process(later, **kw)} AS DATE) - CAST({compiler.process(earlier, **kw)} AS DATE))"


class least(FunctionElement):
    name = "least"
    inherit_cache = True


class greatest(FunctionElement):
    name = "greatest"
    inherit_cache = True


@compiles(least)
def _least_default(element, compiler, **kw):
    return f"LEAST({compiler.process(element.clauses, **kw)})"


@compiles(least, "sqlite")
def _least_sqlite(element, compiler, **kw):
    return f"MIN({compiler.process(element.clauses, **kw)})"


@compiles(greatest)
def _greatest_default(element, compiler, **kw):
    return f"GREATEST({compiler.process(element.clauses, **kw)})"


@compiles(greatest, "sqlite")
def _greatest_sqlite(element, compiler, **kw):
    return f"MAX({compiler.process(element.clauses, **kw)})"


def least_date(*expressions):
    """Earliest of several date expressions; a single expression is returned as is."""
    if len(expressions) == 1:
        return expressions[0]
    return type_coerce(least(*expressions), Date)


def greatest_date(*expressions):
    """Latest of several date expressions; a single expression is returned as is."""
    if len(expressions) == 1:
        return expressions[0]
    return type_coerce(greatest(*expressions), Date)
