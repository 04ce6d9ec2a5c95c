"""
Conditional read/write primitives the transition engine is built on.

Every transition is one ``UPDATE ... WHERE id = :id AND <expected>`` statement.
The storage layer's row-level atomicity is what guarantees a single winner
when two callers race on the same row; nothing here reads before writing.
"""

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError

from salesdesk.db.models import Counter
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.db.gateway", "salesdesk.log")


class _Present:
    def __repr__(self):
        return "PRESENT"


#: Expected value meaning "column IS NOT NULL".
PRESENT = _Present()


def _predicate(column, expected):
    if expected is None:
        return column.is_(None)
    if expected is PRESENT:
        return column.isnot(None)
    if isinstance(expected, (tuple, list, set, frozenset)):
        return column.in_(list(expected))
    return column == expected


def build_criteria(model, expected):
    return [_predicate(getattr(model, field), value) for field, value in expected.items()]


class PersistenceGateway:
    def __init__(self, database):
        self.database = database

    def read(self, model, entity_id):
        with self.database.session_scope() as session:
            return session.get(model, entity_id)

    def conditional_update(self, model, entity_id, values, expected):
        """
        Apply ``values`` to the row only if every ``expected`` predicate holds.
        Returns the number of rows affected (0 or 1).
        """
        criteria = [model.id == entity_id, *build_criteria(model, expected)]
        stmt = update(model).where(and_(*criteria)).values(**values).execution_options(synchronize_session=False)
        with self.database.session_scope() as session:
            result = session.execute(stmt)
            rows = result.rowcount
        logger.debug("conditional_update %s id=%s expected=%s -> %s row(s)", model.__tablename__, entity_id, expected, rows)
        return rows

    def bulk_conditional_update(self, model, values, expected, *criteria):
        stmt = (
            update(model)
            .where(and_(*build_criteria(model, expected), *criteria))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self.database.session_scope() as session:
            return session.execute(stmt).rowcount

    def insert(self, obj):
        with self.database.session_scope() as session:
            session.add(obj)
            session.flush()
        return obj

    def select(self, model, *criteria, order_by=None, limit=None):
        stmt = select(model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.database.session_scope() as session:
            return list(session.scalars(stmt))

    def select_one(self, model, *criteria):
        rows = self.select(model, *criteria, limit=1)
        return rows[0] if rows else None

    def next_sequence(self, name):
        """
        Atomically increment and return the named counter. The first caller
        creates the row; a caller that loses that insert race increments the
        row the winner created.
        """
        try:
            return self._increment(name, create=True)
        except IntegrityError:
            logger.info("Counter %s created concurrently; incrementing existing row", name)
            return self._increment(name, create=False)

    def _increment(self, name, create):
        with self.database.session_scope() as session:
            result = session.execute(
                update(Counter).where(Counter.name == name).values(value=Counter.value + 1)
            )
            if result.rowcount == 0 and create:
                session.add(Counter(name=name, value=1))
                session.flush()
                return 1
            return session.execute(select(Counter.value).where(Counter.name == name)).scalar_one()
