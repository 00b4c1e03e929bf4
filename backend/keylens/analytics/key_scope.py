"""
Key Predicate Builder
=====================

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Builds the predicate the key resolver uses to list the keys a query covers.

IDENTITY DUAL MATCH
-------------------
A key belongs to an identity in one of two ways:

    1. The key is linked to an identity row whose external ID matches
       (keys.identity_id -> identities.external_id)
    2. The key's legacy owner ID matches (keys.owner_id)

Both are checked for every identity filter value with the same operator, so
keys created before identities existed keep showing up:

    identities: [{operator: "is", value: "user_123"}]
        ->  identity.externalId IN ("user_123")  OR  ownerId IN ("user_123")

Several identity values are OR-ed together. Non-string values are skipped.

RESOLVER FIELDS
---------------
The predicate is expressed on resolver field names, not dashboard field
names. sql.py maps these onto columns:

    KEY_ID_COLUMN_FIELD         keys.id
    KEY_NAME_FIELD              keys.name
    KEY_OWNER_FIELD             keys.owner_id
    IDENTITY_EXTERNAL_ID_FIELD  identities.external_id (via keys.identity_id)
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from keylens.analytics.compiler import CompiledFilterSet
from keylens.analytics.filters import IDENTITY_FIELD, KEY_ID_FIELD, NAME_FIELD, FilterValue
from keylens.analytics.predicates import (
    Leaf,
    Predicate,
    Scalar,
    ValueIn,
    all_of,
    any_of,
    leaf,
    retarget,
)

logger = logging.getLogger(__name__)

KEY_ID_COLUMN_FIELD = "id"
KEY_NAME_FIELD = "name"
KEY_OWNER_FIELD = "ownerId"
IDENTITY_EXTERNAL_ID_FIELD = "identity.externalId"

# Dashboard field -> resolver field for plain (non dual-match) fields
RESOLVER_FIELDS: Dict[str, str] = {
    KEY_ID_FIELD: KEY_ID_COLUMN_FIELD,
    NAME_FIELD: KEY_NAME_FIELD,
}


def build_key_scope(identity_filters: Optional[Sequence[FilterValue]]) -> Optional[Predicate]:
    """
    Build the identity dual-match predicate.

    PARAMETERS:
        identity_filters: Filter values of the `identities` field (may be None)

    RETURNS:
        OR over one (externalId OR ownerId) group per usable value,
        or None when there are no usable values.
    """
    groups: List[Predicate] = []
    for item in identity_filters or ():
        if not isinstance(item.value, str):
            logger.debug(f"[KEY_SCOPE] Skipping non-string identity value {item.value!r}")
            continue
        group = any_of([
            leaf(IDENTITY_EXTERNAL_ID_FIELD, item.operator, item.value),
            leaf(KEY_OWNER_FIELD, item.operator, item.value),
        ])
        if group not in groups:
            groups.append(group)
    return any_of(groups)


def build_key_predicate(compiled: CompiledFilterSet) -> Optional[Predicate]:
    """
    Build the full key resolver predicate for a compiled filter set.

    WHAT: AND of the resolver-side field groups (key IDs on the key ID
    column, names on the key name column) and the identity scope.

    RETURNS:
        Predicate over resolver fields, or None when nothing restricts the
        key listing.
    """
    groups: List[Optional[Predicate]] = []
    for field_name, resolver_field in RESOLVER_FIELDS.items():
        spec = compiled.domain.field(field_name)
        if spec is None or not spec.sent_to_key_resolver:
            continue
        field_predicate = compiled.field_predicate(field_name)
        if field_predicate is not None:
            groups.append(retarget(field_predicate, resolver_field))

    identity_spec = compiled.domain.field(IDENTITY_FIELD)
    if identity_spec is not None:
        identity_values = [
            FilterValue(operator=node.operator, value=value)
            for node in compiled.get(IDENTITY_FIELD)
            for value in _leaf_values(node)
        ]
        groups.append(build_key_scope(identity_values))

    return all_of(groups)


def _leaf_values(node: Leaf) -> Sequence[Scalar]:
    if isinstance(node, ValueIn):
        return node.values
    return (node.value,)
