import operator

from sqlalchemy import delete, func, select

from linkauth.database import session_scope
from linkauth.models.schema.db_config import Databases

_COMPARISONS = {
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _conditions(model, filters: dict) -> list:
    """Build WHERE clauses from keyword filters.

    ``field=value`` is equality, ``field=None`` is IS NULL and
    ``field=(op, value)`` compares with one of ``_COMPARISONS``.
    """
    clauses = []
    for name, value in filters.items():
        column = getattr(model, name, None)
        if column is None:
            raise ValueError(f"{model.__tablename__} has no column '{name}'")
        if value is None:
            clauses.append(column.is_(None))
            continue
        compare = operator.eq
        if isinstance(value, tuple):
            symbol, value = value
            if symbol not in _COMPARISONS:
                raise ValueError(f"Unsupported comparison '{symbol}'")
            compare = _COMPARISONS[symbol]
        clauses.append(compare(column, value))
    return clauses


def _delete_records(table: str, **filters) -> int:
    model = getattr(Databases, table)
    with session_scope() as session:
        return session.execute(delete(model).where(*_conditions(model, filters))).rowcount


def _count_records(table: str, **filters) -> int:
    model = getattr(Databases, table)
    with session_scope() as session:
        return session.execute(
            select(func.count()).select_from(model).where(*_conditions(model, filters))
        ).scalar_one()
