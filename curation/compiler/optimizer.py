"""
Optimizer for compiled predicates.

Rewrites a predicate into an equivalent, smaller one:
- Flattening of nested AND/OR nodes
- Removal of neutral children (MatchAll under AND, MatchNone under OR)
- Short-circuit of absorbing children (MatchNone under AND, MatchAll under OR)
- Double negation and constant negation elimination
- Empty id sets collapse to MatchNone
"""

from __future__ import annotations

from typing import Any

from .ir import (
    AndPredicate,
    CompiledRule,
    IdCheck,
    MatchAll,
    MatchNone,
    NotPredicate,
    NumericCheck,
    OrPredicate,
    RelationCheck,
    TagCheck,
)


class PredicateOptimizer:
    """Simplifies predicates without changing their match set."""

    def optimize(self, predicate: Any) -> Any:
        """Return an equivalent, simplified predicate.

        Args:
            predicate: The predicate to simplify

        Returns:
            Simplified predicate (may be the same instance if no changes)
        """
        if isinstance(predicate, AndPredicate):
            return self._optimize_junction(predicate, AndPredicate)
        if isinstance(predicate, OrPredicate):
            return self._optimize_junction(predicate, OrPredicate)
        if isinstance(predicate, NotPredicate):
            return self._optimize_not(predicate)
        if isinstance(predicate, IdCheck) and not predicate.ids:
            return MatchNone()
        return predicate

    def _optimize_junction(self, node: Any, node_type: type) -> Any:
        """Simplify an AND or OR node."""
        is_and = node_type is AndPredicate
        neutral = MatchAll if is_and else MatchNone
        absorbing = MatchNone if is_and else MatchAll

        children: list[Any] = []
        for child in node.children:
            child = self.optimize(child)
            if isinstance(child, absorbing):
                return absorbing()
            if isinstance(child, neutral):
                continue
            if isinstance(child, node_type):
                children.extend(child.children)
            else:
                children.append(child)

        if not children:
            return neutral()
        if len(children) == 1:
            return children[0]
        return node_type(children=tuple(children))

    def _optimize_not(self, node: NotPredicate) -> Any:
        """Simplify a NOT node."""
        child = self.optimize(node.child)
        if isinstance(child, MatchAll):
            return MatchNone()
        if isinstance(child, MatchNone):
            return MatchAll()
        if isinstance(child, NotPredicate):
            return child.child
        return NotPredicate(child=child)

    def analyze(self, predicate: Any) -> dict[str, Any]:
        """Analyze a predicate.

        Args:
            predicate: The predicate to analyze

        Returns:
            Dict with node count, depth and the recipe fields used
        """
        fields: set[str] = set()

        def walk(node: Any, depth: int) -> tuple[int, int]:
            if isinstance(node, (AndPredicate, OrPredicate)):
                count, max_depth = 1, depth
                for child in node.children:
                    c, d = walk(child, depth + 1)
                    count += c
                    max_depth = max(max_depth, d)
                return count, max_depth
            if isinstance(node, NotPredicate):
                c, d = walk(node.child, depth + 1)
                return c + 1, d
            if isinstance(node, (RelationCheck, NumericCheck)):
                fields.add(node.field)
            elif isinstance(node, TagCheck):
                fields.add("tags")
            elif isinstance(node, IdCheck):
                fields.add("id")
            return 1, depth

        node_count, depth = walk(predicate, 1)
        return {
            "node_count": node_count,
            "depth": depth,
            "fields_used": sorted(fields),
            "matches_nothing": isinstance(predicate, MatchNone),
            "matches_everything": isinstance(predicate, MatchAll),
        }


def optimize_predicate(predicate: Any) -> Any:
    """Convenience function to simplify a single predicate."""
    return PredicateOptimizer().optimize(predicate)


def optimize_rule(compiled: CompiledRule) -> CompiledRule:
    """Return a copy of a compiled rule with its predicate simplified."""
    return compiled.model_copy(update={"predicate": optimize_predicate(compiled.predicate)})
