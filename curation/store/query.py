"""
Translation of compiled predicates into SQLAlchemy filter clauses.

Every leaf is rendered with two-valued logic: a NULL column never makes a
clause evaluate to SQL NULL, so ``NOT`` of any clause is its exact
complement. Concretely, positive tests (eq/in/lt/...) require the column
to be non-NULL and negative tests (neq/nin) accept NULL.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import and_, false, not_, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from curation.compiler.ir import (
    AndPredicate,
    IdCheck,
    MatchAll,
    MatchNone,
    NotPredicate,
    NumericCheck,
    OrPredicate,
    RelationCheck,
    TagCheck,
)
from .models import Recipe, RecipeTag, Tag


_NUMERIC_OPS = {
    "eq": lambda col, v: col == v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
}


def to_sql_clause(predicate: Any) -> ColumnElement:
    """Translate a predicate into a WHERE clause over the recipes table.

    Args:
        predicate: A compiled predicate

    Returns:
        SQLAlchemy boolean clause

    Raises:
        TypeError: If the node kind is unknown
    """
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, MatchNone):
        return false()
    if isinstance(predicate, RelationCheck):
        return _relation_clause(predicate)
    if isinstance(predicate, TagCheck):
        return _tag_clause(predicate)
    if isinstance(predicate, NumericCheck):
        return _numeric_clause(predicate)
    if isinstance(predicate, IdCheck):
        if not predicate.ids:
            return false()
        return Recipe.id.in_(predicate.ids)
    if isinstance(predicate, AndPredicate):
        return and_(true(), *(to_sql_clause(c) for c in predicate.children))
    if isinstance(predicate, OrPredicate):
        return or_(false(), *(to_sql_clause(c) for c in predicate.children))
    if isinstance(predicate, NotPredicate):
        return not_(to_sql_clause(predicate.child))
    raise TypeError(f"Unknown predicate node: {type(predicate).__name__}")


def _relation_clause(node: RelationCheck) -> ColumnElement:
    column = getattr(Recipe, node.field)
    positive = node.op in ("eq", "in")

    if not node.values:
        return false() if positive else true()

    if positive:
        return and_(column.is_not(None), column.in_(node.values))
    return or_(column.is_(None), column.not_in(node.values))


def _tag_clause(node: TagCheck) -> ColumnElement:
    if not node.tag_ids:
        return false() if node.quantifier == "some" else true()

    subquery = select(RecipeTag.recipe_id).where(
        RecipeTag.recipe_id == Recipe.id,
        RecipeTag.tag_id.in_(node.tag_ids),
    )
    if node.tag_type:
        subquery = subquery.join(Tag, Tag.id == RecipeTag.tag_id).where(Tag.type == node.tag_type)

    has_tag = subquery.exists()
    return has_tag if node.quantifier == "some" else not_(has_tag)


def _numeric_clause(node: NumericCheck) -> ColumnElement:
    column = getattr(Recipe, node.field)
    if node.op == "neq":
        return or_(column.is_(None), column != node.value)
    return and_(column.is_not(None), _NUMERIC_OPS[node.op](column, node.value))
