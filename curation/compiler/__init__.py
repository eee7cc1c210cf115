"""
Compiler package for the curation workbench.

Provides compile-time transformation of rule configurations into
storage-independent predicates, plus their simplification.
"""

from curation.compiler.ir import (
    MatchAll,
    MatchNone,
    RelationCheck,
    TagCheck,
    NumericCheck,
    IdCheck,
    AndPredicate,
    OrPredicate,
    NotPredicate,
    Predicate,
    WarningCode,
    CompileWarning,
    CompiledRule,
    and_,
    or_,
    not_,
    ids_in,
    referenced_ids,
)
from curation.compiler.context import CollectionContext
from curation.compiler.compiler import RuleCompiler, compile_rule
from curation.compiler.optimizer import PredicateOptimizer, optimize_predicate, optimize_rule

__all__ = [
    # IR Types
    "MatchAll",
    "MatchNone",
    "RelationCheck",
    "TagCheck",
    "NumericCheck",
    "IdCheck",
    "AndPredicate",
    "OrPredicate",
    "NotPredicate",
    "Predicate",
    "WarningCode",
    "CompileWarning",
    "CompiledRule",
    "and_",
    "or_",
    "not_",
    "ids_in",
    "referenced_ids",
    # Context
    "CollectionContext",
    # Compiler
    "RuleCompiler",
    "compile_rule",
    # Optimizer
    "PredicateOptimizer",
    "optimize_predicate",
    "optimize_rule",
]
