#!/usr/bin/env python
"""Tests for phenotype rules"""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from proximity.exceptions import InvalidConfigurationError, MissingDataError
from proximity.phenotypes import (
    AllOf,
    AnyOf,
    LabelRule,
    ThresholdRule,
    make_phenotype_rules,
    parse_phenotype_rules,
    parse_rule,
    phenotype_counts,
    require_population,
    resolve_selector,
    select_rows,
    unique_phenotypes,
    validate_phenotypes
)


@pytest.fixture
def cells():
    return pd.DataFrame({
        'Cell ID': [1, 2, 3, 4, 5],
        'Cell X Position': [0, 1, 2, 3, 4],
        'Cell Y Position': [0, 0, 0, 0, 0],
        'Phenotype': ['CD8', 'CD4', 'Tumor', 'Tumor', 'CD8'],
        'Membrane PDL1 (Opal 520) Mean': [0.5, 1.0, 5.0, np.nan, 3.5],
        'Tissue Category': ['stroma', 'stroma', 'tumor', 'tumor', 'tumor'],
    })


class TestParseRule:
    """Test building rules from configuration values"""

    def test_label(self):
        assert parse_rule('CD8') == LabelRule(('CD8',))

    def test_label_union(self):
        assert parse_rule(['CD4', 'CD8']) == LabelRule(('CD4', 'CD8'))

    def test_threshold(self):
        rule = parse_rule({'column': 'PDL1', 'op': '>', 'value': 3})
        assert rule == ThresholdRule('PDL1', '>', 3.0)

    def test_compound(self):
        rule = parse_rule({'all': ['Tumor', {'column': 'PDL1', 'op': '>=', 'value': 1}]})
        assert isinstance(rule, AllOf)
        assert rule.rules[0] == LabelRule(('Tumor',))
        assert isinstance(rule.rules[1], ThresholdRule)

        rule = parse_rule({'any': ['CD4', 'CD8']})
        assert isinstance(rule, AnyOf)

    def test_labels_other_column(self):
        rule = parse_rule({'labels': 'tumor', 'column': 'Tissue Category'})
        assert rule == LabelRule(('tumor',), 'Tissue Category')

    def test_rule_passthrough(self):
        rule = LabelRule(('CD8',))
        assert parse_rule(rule) is rule

    def test_invalid(self):
        """Unrecognized forms raise InvalidConfigurationError"""
        with pytest.raises(InvalidConfigurationError):
            parse_rule(42)
        with pytest.raises(InvalidConfigurationError):
            parse_rule([])
        with pytest.raises(InvalidConfigurationError):
            parse_rule({'column': 'PDL1'})
        with pytest.raises(InvalidConfigurationError):
            ThresholdRule('PDL1', '=>', 1)


class TestSelectRows:
    """Test the rule evaluator"""

    def test_label(self, cells):
        assert list(select_rows(cells, 'CD8')) == [True, False, False, False, True]

    def test_union(self, cells):
        assert list(select_rows(cells, ['CD4', 'CD8'])) == [True, True, False, False, True]

    def test_threshold_skips_missing(self, cells):
        """Missing values never match a threshold"""
        rule = ThresholdRule('Membrane PDL1 (Opal 520) Mean', '>', 3)
        assert list(select_rows(cells, rule)) == [False, False, True, False, True]

        rule = ThresholdRule('Membrane PDL1 (Opal 520) Mean', '!=', 0)
        assert list(select_rows(cells, rule)) == [True, True, True, False, True]

    def test_all_of(self, cells):
        """Tumor cells with high PDL1"""
        rule = parse_rule({'all': ['Tumor', {'column': 'Membrane PDL1 (Opal 520) Mean',
                                             'op': '>', 'value': 3}]})
        assert list(select_rows(cells, rule)) == [False, False, True, False, False]

    def test_any_of(self, cells):
        rule = AnyOf((LabelRule(('CD4',)), LabelRule(('tumor',), 'Tissue Category')))
        assert list(select_rows(cells, rule)) == [False, True, True, True, True]

    def test_missing_column(self, cells):
        """Rules on absent columns are configuration errors"""
        with pytest.raises(InvalidConfigurationError):
            select_rows(cells, ThresholdRule('CD3 Mean', '>', 1))
        with pytest.raises(InvalidConfigurationError):
            select_rows(cells.drop(columns='Phenotype'), 'CD8')


class TestPhenotypeMappings:
    """Test phenotype name to rule mappings"""

    def test_make_rules(self):
        rules = make_phenotype_rules(['CD8', 'Tumor'])
        assert rules == {'CD8': LabelRule(('CD8',)), 'Tumor': LabelRule(('Tumor',))}

    def test_parse_rules(self):
        rules = parse_phenotype_rules({'CD8': 'CD8', 'Lymphocyte': ['CD4', 'CD8']})
        assert rules['Lymphocyte'] == LabelRule(('CD4', 'CD8'))

    def test_validate(self):
        """Missing names are listed in the error"""
        rules = make_phenotype_rules(['CD8'])
        validate_phenotypes(['CD8'], rules)
        with pytest.raises(InvalidConfigurationError) as excinfo:
            validate_phenotypes(['CD8', 'Tumor', 'CD68'], rules)
        assert excinfo.value.names == ['CD68', 'Tumor']

    def test_resolve_selector(self, cells):
        rules = {'T': 'Tumor', 'Lymphocyte': ['CD4', 'CD8']}
        assert resolve_selector('T', rules) == LabelRule(('Tumor',))

        union = resolve_selector(['T', 'Lymphocyte'], rules)
        assert isinstance(union, AnyOf)
        assert select_rows(cells, union).all()

        with pytest.raises(InvalidConfigurationError):
            resolve_selector('CD68', rules)

        # Without rules names are Phenotype values
        assert resolve_selector(['CD4', 'CD8']) == LabelRule(('CD4', 'CD8'))

    def test_unique_phenotypes(self):
        assert unique_phenotypes([('CD8', 'Tumor'), ('CD8', 'CD68')]) == ['CD8', 'Tumor', 'CD68']
        with pytest.raises(InvalidConfigurationError):
            unique_phenotypes([('CD8',)])

    def test_require_population(self, cells):
        assert len(require_population(cells, 'Tumor')) == 2
        with pytest.raises(MissingDataError):
            require_population(cells, 'CD68', 'CD68')

    def test_phenotype_counts(self, cells):
        counts = phenotype_counts(cells, make_phenotype_rules(['CD8', 'CD68']))
        assert counts == {'CD8': 2, 'CD68': 0}
