"""
SQL Key Resolver
================

**Version**: 1.0.0
**Created**: 2026-10-03
**Status**: Active

Renders predicate trees as SQLAlchemy Core expressions and resolves the keys
a query covers from the relational row store.

TABLES (reflected, not owned)
-----------------------------
    apis(id, workspace_id, key_auth_id, deleted_at_m)
    keys(id, workspace_id, key_auth_id, name, owner_id, identity_id, deleted_at_m)
    identities(id, workspace_id, external_id)

This service never creates or migrates these tables. They are reflected on
first use.

PATTERN ESCAPING
----------------
Pattern values are escaped (autoescape=True), so `%` and `_` typed into the
dashboard match literally.

RELATED FILES
-------------
- keylens/analytics/key_scope.py: Builds the predicate rendered here
- keylens/analytics/pipeline.py: Calls SqlKeyResolver.resolve
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import ColumnElement
from fastapi.concurrency import run_in_threadpool

from keylens.analytics.errors import scope_not_found
from keylens.analytics.filters import FilterOperator
from keylens.analytics.key_scope import (
    IDENTITY_EXTERNAL_ID_FIELD,
    KEY_ID_COLUMN_FIELD,
    KEY_NAME_FIELD,
    KEY_OWNER_FIELD,
)
from keylens.analytics.predicates import AllOf, AnyOf, Leaf, Predicate, ValueIn

logger = logging.getLogger(__name__)


# =============================================================================
# RENDERING
# =============================================================================

@dataclass(frozen=True)
class RelatedColumn:
    """
    A field that lives in another table, reached through a foreign key.

    Rendered as a correlated EXISTS:

        EXISTS (SELECT 1 FROM <table> WHERE <table>.<target_key> = <source>
                AND <condition on table.column>)
    """
    table: sa.Table
    column: str
    source: ColumnElement
    target_key: str = "id"


ColumnMap = Mapping[str, Union[ColumnElement, RelatedColumn]]


def _render_leaf(node: Leaf, column: ColumnElement) -> ColumnElement:
    if isinstance(node, ValueIn):
        if node.matches_nothing:
            return sa.false()
        return column.in_(node.values)
    if node.operator is FilterOperator.STARTS_WITH:
        return column.startswith(node.value, autoescape=True)
    if node.operator is FilterOperator.ENDS_WITH:
        return column.endswith(node.value, autoescape=True)
    return column.contains(node.value, autoescape=True)


def render_sql(predicate: Optional[Predicate], columns: ColumnMap) -> ColumnElement:
    """
    Render a predicate tree as a SQLAlchemy boolean expression.

    PARAMETERS:
        predicate: Tree to render; None renders as TRUE
        columns: Field name -> column (or RelatedColumn)

    RETURNS:
        ColumnElement usable in .where()

    RAISES:
        KeyError: a leaf references a field missing from `columns`
    """
    if predicate is None:
        return sa.true()
    if isinstance(predicate, AnyOf):
        return sa.or_(*(render_sql(child, columns) for child in predicate.children))
    if isinstance(predicate, AllOf):
        return sa.and_(*(render_sql(child, columns) for child in predicate.children))

    target = columns[predicate.field]
    if isinstance(target, RelatedColumn):
        return sa.exists().where(
            target.table.c[target.target_key] == target.source,
            _render_leaf(predicate, target.table.c[target.column]),
        )
    return _render_leaf(predicate, target)


# =============================================================================
# KEY RESOLVER
# =============================================================================

@dataclass(frozen=True)
class KeyResolution:
    """Keyspace of the API plus the IDs of keys matching the predicate."""
    keyspace_id: str
    key_ids: Tuple[str, ...]


class SqlKeyResolver:
    """
    Key resolver backed by the relational row store.

    WHAT: Finds the API's keyspace and lists the non-deleted keys in it that
    match the key predicate.

    WHY: Executor tables only know key IDs. Names and identities live in the
    row store, so filters on them are turned into a concrete key ID list
    before the aggregation query runs.

    USAGE:
        resolver = SqlKeyResolver(sa.create_engine(settings.KEYS_DATABASE_URL))
        resolution = await resolver.resolve("ws_1", "api_1", predicate)
    """

    TABLE_NAMES = ("apis", "keys", "identities")

    def __init__(self, engine: Engine):
        self.engine = engine
        self._tables: Optional[Dict[str, sa.Table]] = None
        self._lock = threading.Lock()

    @property
    def tables(self) -> Dict[str, sa.Table]:
        if self._tables is None:
            with self._lock:
                if self._tables is None:
                    metadata = sa.MetaData()
                    metadata.reflect(bind=self.engine, only=list(self.TABLE_NAMES))
                    self._tables = {name: metadata.tables[name] for name in self.TABLE_NAMES}
                    logger.info(f"[KEY_RESOLVER] Reflected tables {list(self.TABLE_NAMES)}")
        return self._tables

    def column_map(self) -> Dict[str, Union[ColumnElement, RelatedColumn]]:
        keys = self.tables["keys"]
        return {
            KEY_ID_COLUMN_FIELD: keys.c.id,
            KEY_NAME_FIELD: keys.c.name,
            KEY_OWNER_FIELD: keys.c.owner_id,
            IDENTITY_EXTERNAL_ID_FIELD: RelatedColumn(
                table=self.tables["identities"],
                column="external_id",
                source=keys.c.identity_id,
            ),
        }

    def keys_query(self, keyspace_id: str, predicate: Optional[Predicate]) -> sa.Select:
        keys = self.tables["keys"]
        return (
            sa.select(keys.c.id)
            .where(
                keys.c.key_auth_id == keyspace_id,
                keys.c.deleted_at_m.is_(None),
                render_sql(predicate, self.column_map()),
            )
            .order_by(keys.c.id)
        )

    def resolve_sync(
        self,
        workspace_id: str,
        api_id: str,
        predicate: Optional[Predicate] = None,
    ) -> KeyResolution:
        """
        Blocking resolution.

        RAISES:
            QueryError(SCOPE_NOT_FOUND): API missing, soft-deleted, in another
            workspace, or without key authentication
        """
        apis = self.tables["apis"]
        with self.engine.connect() as conn:
            keyspace_id = conn.execute(
                sa.select(apis.c.key_auth_id).where(
                    apis.c.id == api_id,
                    apis.c.workspace_id == workspace_id,
                    apis.c.deleted_at_m.is_(None),
                )
            ).scalar_one_or_none()

            if keyspace_id is None:
                raise scope_not_found(
                    "API not found or does not have key authentication enabled",
                    api_id=api_id,
                    workspace_id=workspace_id,
                )

            key_ids: List[str] = list(conn.execute(self.keys_query(keyspace_id, predicate)).scalars())

        logger.info(
            f"[KEY_RESOLVER] api={api_id} keyspace={keyspace_id} matched_keys={len(key_ids)}"
        )
        return KeyResolution(keyspace_id=keyspace_id, key_ids=tuple(key_ids))

    async def resolve(
        self,
        workspace_id: str,
        api_id: str,
        predicate: Optional[Predicate] = None,
    ) -> KeyResolution:
        return await run_in_threadpool(self.resolve_sync, workspace_id, api_id, predicate)
