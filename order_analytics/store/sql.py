"""
SQL Key-Value Store Adapter

Implements the store capability over SQLAlchemy 2.0 async sessions.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) in development and
tests. Increment-or-initialize and set-union run as single
``INSERT ... ON CONFLICT`` statements, so concurrent callers never lose
updates.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Mapping, Optional, Tuple, Type

import structlog
from sqlalchemy import and_, func, select, tuple_, update as sql_update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from order_analytics.database.connection import create_session_factory, session_scope
from order_analytics.database.models import (
    Base,
    DailyOrderStatsRow,
    DailyStoreSeqRow,
    OrderRow,
    OrderStatsRow,
    StoreDailyOrdersRow,
)
from order_analytics.exceptions import ConditionFailedError, StoreError
from order_analytics.store.base import (
    DAILY_ORDER_STATS,
    KEY_SCHEMAS,
    ORDER_STATS,
    ORDERS,
    SECONDARY_INDEXES,
    STORE_DAILY_ORDERS,
    Item,
    KeyValueStore,
    Page,
    ScanCursor,
    StringSet,
    check_cursor,
    key_of,
    scan_shape,
)
from order_analytics.store.conditions import And, Between, Condition, Eq, Gt

logger = structlog.get_logger(__name__)

MODELS: Dict[str, Type[Base]] = {
    ORDERS: OrderRow,
    ORDER_STATS: OrderStatsRow,
    DAILY_ORDER_STATS: DailyOrderStatsRow,
    STORE_DAILY_ORDERS: StoreDailyOrdersRow,
}

# (table, attribute) -> (member model, parent key column, member column)
SET_ATTRIBUTES: Dict[Tuple[str, str], Tuple[Type[Base], str, str]] = {
    (DAILY_ORDER_STATS, "store_seqs"): (DailyStoreSeqRow, "order_date", "seq"),
}


class SQLKeyValueStore(KeyValueStore):
    """
    Store capability backed by relational tables.

    Example:
        engine = create_engine("sqlite+aiosqlite:///./dev.db")
        await create_tables(engine)
        store = SQLKeyValueStore(engine)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        max_batch_size: int = 25,
        scan_page_size: int = 1000,
    ):
        self.engine = engine
        self.max_batch_size = max_batch_size
        self.scan_page_size = scan_page_size
        self._session_factory = create_session_factory(engine)
        self._dialect = engine.dialect.name

    # =========================================================================
    # HELPERS
    # =========================================================================

    @asynccontextmanager
    async def _session(self, operation: str, table: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except (StoreError, ValueError):
            raise
        except SQLAlchemyError as e:
            logger.error("Store operation failed", operation=operation, table=table, error=str(e))
            raise StoreError(f"{operation} on {table} failed: {e}") from e

    def _model(self, table: str) -> Type[Base]:
        try:
            return MODELS[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def _insert(self, model: Type[Base]):
        if self._dialect == "postgresql":
            return pg_insert(model.__table__)
        if self._dialect == "sqlite":
            return sqlite_insert(model.__table__)
        raise StoreError(f"Unsupported SQL dialect: {self._dialect}")

    def _column(self, model: Type[Base], attribute: str):
        try:
            return model.__table__.c[attribute]
        except KeyError:
            raise ValueError(f"Unknown attribute {attribute} on {model.__tablename__}") from None

    def _compile(self, model: Type[Base], condition: Condition):
        if isinstance(condition, Eq):
            return self._column(model, condition.attribute) == condition.value
        if isinstance(condition, Gt):
            return self._column(model, condition.attribute) > condition.value
        if isinstance(condition, Between):
            return self._column(model, condition.attribute).between(condition.low, condition.high)
        if isinstance(condition, And):
            return and_(*(self._compile(model, c) for c in condition.conditions))
        raise ValueError(f"Unsupported condition: {condition!r}")

    def _key_clause(self, table: str, key: Mapping[str, Any]):
        model = self._model(table)
        return and_(*(self._column(model, attr) == key[attr] for attr in KEY_SCHEMAS[table]))

    def _row_values(self, table: str, item: Mapping[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        columns = model.__table__.c.keys()
        unknown = set(item) - set(columns) - {attr for (t, attr) in SET_ATTRIBUTES if t == table}
        if unknown:
            raise ValueError(f"Unknown attribute(s) for {table}: {sorted(unknown)}")
        return {column: item.get(column) for column in columns}

    def _to_item(self, row: Base) -> Item:
        return {column.key: getattr(row, column.key) for column in row.__table__.columns}

    async def _attach_sets(self, session: AsyncSession, table: str, items: List[Item]) -> None:
        for (set_table, attribute), (member_model, parent_column, member_column) in SET_ATTRIBUTES.items():
            if set_table != table or not items:
                continue
            parents = [item[parent_column] for item in items]
            result = await session.execute(
                select(member_model).where(getattr(member_model, parent_column).in_(parents))
            )
            members: Dict[Any, set] = {}
            for row in result.scalars():
                members.setdefault(getattr(row, parent_column), set()).add(getattr(row, member_column))
            for item in items:
                if item[parent_column] in members:
                    item[attribute] = StringSet.of(members[item[parent_column]])

    async def _add_set_members(
        self,
        session: AsyncSession,
        table: str,
        key: Mapping[str, Any],
        add_to_sets: Mapping[str, StringSet],
    ) -> None:
        for attribute, members in add_to_sets.items():
            try:
                member_model, parent_column, member_column = SET_ATTRIBUTES[(table, attribute)]
            except KeyError:
                raise ValueError(f"{table}.{attribute} is not a set attribute") from None
            if not members.members:
                continue
            stmt = self._insert(member_model).on_conflict_do_nothing()
            await session.execute(
                stmt,
                [{parent_column: key[parent_column], member_column: m} for m in sorted(members.members)],
            )

    # =========================================================================
    # CAPABILITY
    # =========================================================================

    async def get(self, table: str, key: Mapping[str, Any]) -> Optional[Item]:
        model = self._model(table)
        async with self._session("get", table) as session:
            result = await session.execute(select(model).where(self._key_clause(table, key)))
            row = result.scalar_one_or_none()
            if row is None:
                return None
            item = self._to_item(row)
            await self._attach_sets(session, table, [item])
            return item

    async def put(self, table: str, item: Item) -> None:
        await self._upsert_rows(table, [item], "put")

    async def batch_put(self, table: str, items: List[Item]) -> List[Item]:
        if len(items) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(items)} exceeds max batch size {self.max_batch_size}"
            )
        if items:
            await self._upsert_rows(table, items, "batch_put")
        # Statements are all-or-nothing, so nothing is ever left unprocessed
        return []

    async def _upsert_rows(self, table: str, items: List[Item], operation: str) -> None:
        model = self._model(table)
        key_columns = list(KEY_SCHEMAS[table])
        rows = [self._row_values(table, item) for item in items]
        stmt = self._insert(model)
        updates = {c: stmt.excluded[c] for c in rows[0] if c not in key_columns}
        if updates:
            stmt = stmt.on_conflict_do_update(index_elements=key_columns, set_=updates)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=key_columns)
        async with self._session(operation, table) as session:
            await session.execute(stmt, rows)

    async def update(
        self,
        table: str,
        key: Mapping[str, Any],
        *,
        set_values: Optional[Mapping[str, Any]] = None,
        increments: Optional[Mapping[str, int]] = None,
        add_to_sets: Optional[Mapping[str, StringSet]] = None,
        condition: Optional[Condition] = None,
    ) -> None:
        model = self._model(table)
        set_values = dict(set_values or {})
        increments = dict(increments or {})
        key_values = {attr: key[attr] for attr in KEY_SCHEMAS[table]}

        matched = True
        async with self._session("update", table) as session:
            if condition is not None:
                values = dict(set_values)
                for attr, delta in increments.items():
                    values[attr] = func.coalesce(self._column(model, attr), 0) + delta
                stmt = (
                    sql_update(model.__table__)
                    .where(self._key_clause(table, key), self._compile(model, condition))
                    .values(**values)
                )
                result = await session.execute(stmt)
                matched = result.rowcount > 0
            else:
                stmt = self._insert(model).values(**key_values, **set_values, **increments)
                updates = {attr: stmt.excluded[attr] for attr in set_values}
                for attr in increments:
                    updates[attr] = func.coalesce(self._column(model, attr), 0) + stmt.excluded[attr]
                if updates:
                    stmt = stmt.on_conflict_do_update(index_elements=list(key_values), set_=updates)
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=list(key_values))
                await session.execute(stmt)

            if matched and add_to_sets:
                await self._add_set_members(session, table, key_values, add_to_sets)

        if not matched:
            raise ConditionFailedError(table, key_values)

    async def query(
        self,
        table: str,
        index: str,
        value: Any,
        condition: Optional[Condition] = None,
    ) -> List[Item]:
        if index not in SECONDARY_INDEXES.get(table, ()):
            raise ValueError(f"No index {index} on {table}")
        model = self._model(table)
        clauses = [self._column(model, index) == value]
        if condition is not None:
            clauses.append(self._compile(model, condition))
        order = [self._column(model, attr) for attr in KEY_SCHEMAS[table]]

        async with self._session("query", table) as session:
            result = await session.execute(select(model).where(*clauses).order_by(*order))
            items = [self._to_item(row) for row in result.scalars()]
            await self._attach_sets(session, table, items)
            return items

    async def scan(
        self,
        table: str,
        condition: Optional[Condition] = None,
        cursor: Optional[ScanCursor] = None,
        limit: Optional[int] = None,
    ) -> Page:
        check_cursor(table, condition, cursor)
        model = self._model(table)
        limit = limit or self.scan_page_size
        key_columns = [self._column(model, attr) for attr in KEY_SCHEMAS[table]]

        stmt = select(model).order_by(*key_columns).limit(limit + 1)
        if condition is not None:
            stmt = stmt.where(self._compile(model, condition))
        if cursor is not None:
            if len(key_columns) == 1:
                stmt = stmt.where(key_columns[0] > cursor.last_key[0])
            else:
                stmt = stmt.where(tuple_(*key_columns) > tuple_(*cursor.last_key))

        async with self._session("scan", table) as session:
            result = await session.execute(stmt)
            items = [self._to_item(row) for row in result.scalars()]
            page = Page(items=items[:limit])
            await self._attach_sets(session, table, page.items)

        if len(items) > limit:
            page.cursor = ScanCursor(
                shape=scan_shape(table, condition),
                last_key=key_of(table, page.items[-1]),
            )
        return page

    async def close(self) -> None:
        await self.engine.dispose()
