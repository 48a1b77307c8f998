# -*- coding: utf-8 -*-
"""
Phenotype selection rules.

A phenotype is either assigned directly in the cell table (the Phenotype
column) or derived from a rule over other columns. Rules are plain data:

- LabelRule: membership in a categorical column (union of labels)
- ThresholdRule: numeric comparison on one column
- AllOf / AnyOf: conjunction / union of other rules

`select_rows` is the single evaluator for all rule kinds. `parse_rule`
turns the YAML/JSON form used in configuration files into rules.
"""

import logging
import operator
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from proximity.exceptions import InvalidConfigurationError, MissingDataError
from proximity.field import PHENOTYPE

logger = logging.getLogger(__name__)

OPERATORS = {
    '>': operator.gt,
    '>=': operator.ge,
    '<': operator.lt,
    '<=': operator.le,
    '==': operator.eq,
    '!=': operator.ne,
}


@dataclass(frozen=True)
class LabelRule:
    """Select cells whose `column` value is one of `labels`"""
    labels: Tuple[str, ...]
    column: str = PHENOTYPE


@dataclass(frozen=True)
class ThresholdRule:
    """Select cells where `column <op> value`"""
    column: str
    op: str
    value: float

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise InvalidConfigurationError(
                f"Unknown comparison '{self.op}' for column '{self.column}'", OPERATORS
            )


@dataclass(frozen=True)
class AllOf:
    """Select cells matching every one of `rules`"""
    rules: Tuple['Rule', ...]


@dataclass(frozen=True)
class AnyOf:
    """Select cells matching at least one of `rules`"""
    rules: Tuple['Rule', ...]


Rule = Union[LabelRule, ThresholdRule, AllOf, AnyOf]


def select_rows(cells: pd.DataFrame, rule) -> pd.Series:
    """Evaluate a phenotype rule against a cell table

    Args:
        cells: Cell table
        rule: A rule, or any spec accepted by `parse_rule`

    Returns:
        Boolean Series aligned with `cells`
    """
    rule = parse_rule(rule)

    if isinstance(rule, LabelRule):
        if rule.column not in cells.columns:
            raise InvalidConfigurationError("Column not found in cell table", [rule.column])
        return cells[rule.column].isin(rule.labels)

    if isinstance(rule, ThresholdRule):
        if rule.column not in cells.columns:
            raise InvalidConfigurationError("Column not found in cell table", [rule.column])
        values = pd.to_numeric(cells[rule.column], errors='coerce')
        # NaN compares False for every operator except !=
        return OPERATORS[rule.op](values, rule.value) & values.notna()

    if isinstance(rule, AnyOf):
        selected = pd.Series(False, index=cells.index)
        for sub_rule in rule.rules:
            selected |= select_rows(cells, sub_rule)
        return selected

    # AllOf
    selected = pd.Series(True, index=cells.index)
    for sub_rule in rule.rules:
        selected &= select_rows(cells, sub_rule)
    return selected


def parse_rule(spec) -> Rule:
    """Build a rule from its configuration form

    Accepted forms:
        'CD8'                                  -> LabelRule(('CD8',))
        ['CD4', 'CD8']                         -> LabelRule(('CD4', 'CD8'))
        {'column': 'PDL1', 'op': '>', 'value': 3} -> ThresholdRule
        {'all': [<spec>, <spec>, ...]}         -> AllOf
        {'any': [<spec>, <spec>, ...]}         -> AnyOf
        {'labels': [...], 'column': 'Other'}   -> LabelRule on another column
    """
    if isinstance(spec, (LabelRule, ThresholdRule, AllOf, AnyOf)):
        return spec

    if isinstance(spec, str):
        return LabelRule((spec,))

    if isinstance(spec, (list, tuple)):
        if spec and all(isinstance(s, str) for s in spec):
            return LabelRule(tuple(spec))
        raise InvalidConfigurationError(
            f"A list rule must be a non-empty list of labels, got {spec!r}"
        )

    if isinstance(spec, Mapping):
        if 'all' in spec:
            return AllOf(tuple(parse_rule(s) for s in spec['all']))
        if 'any' in spec:
            return AnyOf(tuple(parse_rule(s) for s in spec['any']))
        if 'labels' in spec:
            labels = spec['labels']
            labels = (labels,) if isinstance(labels, str) else tuple(labels)
            return LabelRule(labels, spec.get('column', PHENOTYPE))
        if {'column', 'op', 'value'} <= set(spec):
            return ThresholdRule(spec['column'], spec['op'], float(spec['value']))

    raise InvalidConfigurationError(f"Cannot interpret phenotype rule {spec!r}")


def make_phenotype_rules(phenotypes: Iterable[str]) -> Dict[str, Rule]:
    """Rules for phenotypes assigned directly in the Phenotype column"""
    return {name: LabelRule((name,)) for name in phenotypes}


def parse_phenotype_rules(specs: Mapping) -> Dict[str, Rule]:
    """Parse a mapping of phenotype name -> rule spec"""
    return {name: parse_rule(spec) for name, spec in specs.items()}


def validate_phenotypes(names: Iterable[str], rules: Mapping):
    """Fail fast when a referenced phenotype has no rule"""
    missing = set(names) - set(rules)
    if missing:
        raise InvalidConfigurationError("Phenotypes missing from phenotype rules", missing)


def resolve_selector(selector, rules: Optional[Mapping] = None) -> Rule:
    """Turn a phenotype name (or list of names) into a rule

    Names are looked up in `rules`; a list of names selects the union of
    those phenotypes. Without `rules`, names are Phenotype column values.
    """
    if not rules:
        return parse_rule(selector)

    names = [selector] if isinstance(selector, str) else list(selector)
    validate_phenotypes(names, rules)
    if len(names) == 1:
        return parse_rule(rules[names[0]])
    return AnyOf(tuple(parse_rule(rules[name]) for name in names))


def unique_phenotypes(pairs) -> List[str]:
    """Phenotype names used in `pairs`, in first-seen order"""
    seen = []
    for pair in pairs:
        if len(pair) != 2:
            raise InvalidConfigurationError(f"Phenotype pairs must have two entries, got {pair!r}")
        for name in pair:
            if name not in seen:
                seen.append(name)
    return seen


def require_population(cells: pd.DataFrame, rule, name: str = None) -> pd.DataFrame:
    """Return the selected cells, raising MissingDataError if there are none"""
    selected = cells[select_rows(cells, rule)]
    if len(selected) == 0:
        raise MissingDataError(name or str(rule))
    return selected


def phenotype_counts(cells: pd.DataFrame, rules: Mapping) -> Dict[str, int]:
    """Number of cells matching each rule"""
    return {name: int(np.sum(select_rows(cells, rule))) for name, rule in rules.items()}
