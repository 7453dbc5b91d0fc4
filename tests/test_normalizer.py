"""
Tests for the dialect normalizer.

Test coverage:
- Type spelling rewrites (full spelling vs base name, sized replacements)
- Dialect fallback rules (Oracle NUMBER, SQLite affinity)
- Default expression rewrites and wrapping parentheses
- Auto-increment marker types
- Inputs are never mutated
"""

import pytest

from core.ddl_parser import ParsedColumn, ParsedTable
from core.normalizer import (
    split_type, normalize_type, strip_wrapping_parens, normalize_default,
    normalize_column, normalize_table,
)
from core.dialects import sqlserver, mysql, postgresql, oracle, sqlite


class TestSplitType:

    def test_sized_type(self):
        assert split_type('NVARCHAR(255)') == ('NVARCHAR', '(255)')

    def test_whitespace_inside_arguments(self):
        assert split_type('decimal( 10, 2 )') == ('DECIMAL', '(10,2)')

    def test_multi_word_type(self):
        assert split_type('timestamp  with time zone') == ('TIMESTAMP WITH TIME ZONE', '')


class TestNormalizeType:

    def test_base_name_keeps_size_on_sized_replacement(self):
        assert normalize_type('NVARCHAR(50)', sqlserver.TYPE_MAP) == 'VARCHAR(50)'

    def test_full_spelling_wins(self):
        assert normalize_type('NVARCHAR(MAX)', sqlserver.TYPE_MAP) == 'TEXT'
        assert normalize_type('tinyint(1)', mysql.TYPE_MAP) == 'BOOLEAN'

    def test_size_dropped_on_unsized_replacement(self):
        assert normalize_type('TINYINT(4)', mysql.TYPE_MAP) == 'SMALLINT'

    def test_fixed_replacement(self):
        assert normalize_type('MONEY', sqlserver.TYPE_MAP) == 'DECIMAL(19,4)'

    def test_unknown_type_passes_through(self):
        assert normalize_type('geography', sqlserver.TYPE_MAP) == 'GEOGRAPHY'

    def test_rule_receives_full_spelling(self):
        seen = []

        def rule(raw):
            seen.append(raw)
            return 'TEXT'

        assert normalize_type('mystery(3)', {}, rule) == 'TEXT'
        assert seen == ['MYSTERY(3)']


class TestDialectRules:

    @pytest.mark.parametrize("raw, expected", [
        ('NUMBER(10)', 'INTEGER'),
        ('NUMBER(19)', 'BIGINT'),
        ('NUMBER(8,3)', 'DECIMAL(8,3)'),
        ('NUMBER(*,0)', 'BIGINT'),
        ('NUMBER', 'INTEGER'),
        ('DATE', 'DATE'),
    ])
    def test_oracle_number(self, raw, expected):
        assert oracle.resolve_number(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ('UNSIGNED BIG INT', 'INTEGER'),
        ('NATIVE CHARACTER(70)', 'TEXT'),
        ('FLOAT8', 'REAL'),
        ('BIGINT', 'BIGINT'),
        ('MYSTERY_TYPE', 'NUMERIC'),
    ])
    def test_sqlite_affinity(self, raw, expected):
        assert sqlite.apply_affinity(raw) == expected

    def test_postgres_cast_stripping(self):
        assert postgresql.strip_casts("'active'::character varying") == "'active'"
        assert postgresql.strip_casts("now()::timestamp") == 'now()'
        assert postgresql.strip_casts("'a::b'") == "'a::b'"

    def test_sqlserver_unicode_prefix(self):
        assert sqlserver.strip_unicode_prefix("N'abc'") == "'abc'"
        assert sqlserver.strip_unicode_prefix("'abc'") == "'abc'"


class TestNormalizeDefault:

    def test_wrapping_parens(self):
        assert strip_wrapping_parens('((0))') == '0'
        assert strip_wrapping_parens('(a) + (b)') == '(a) + (b)'
        assert strip_wrapping_parens("(')')") == "')'"

    def test_function_mapping(self):
        assert normalize_default('((getdate()))', sqlserver.DEFAULT_MAP) == 'now()'
        assert normalize_default('NEWID()', sqlserver.DEFAULT_MAP) == 'gen_random_uuid()'
        assert normalize_default('SYSDATE', oracle.DEFAULT_MAP) == 'now()'

    def test_null_default_is_dropped(self):
        assert normalize_default('NULL', mysql.DEFAULT_MAP) is None
        assert normalize_default(None, mysql.DEFAULT_MAP) is None

    def test_literals_pass_through(self):
        assert normalize_default("'pending'", postgresql.DEFAULT_MAP) == "'pending'"
        assert normalize_default('42', postgresql.DEFAULT_MAP) == '42'

    def test_rule_runs_before_lookup(self):
        assert normalize_default("'x'::text", postgresql.DEFAULT_MAP, postgresql.strip_casts) == "'x'"
        assert normalize_default("CURRENT_TIMESTAMP::timestamp", postgresql.DEFAULT_MAP,
                                 postgresql.strip_casts) == 'now()'


class TestNormalizeColumn:

    def test_auto_increment_bigint(self):
        column = ParsedColumn('id', 'BIGINT', is_auto_increment=True, default='0')
        normalized = normalize_column(column, mysql.STRATEGY)
        assert normalized.raw_type == 'BIGSERIAL'
        assert normalized.nullable is False
        assert normalized.default is None

    def test_serial_spelling_sets_auto_increment(self):
        normalized = normalize_column(ParsedColumn('id', 'serial'), postgresql.STRATEGY)
        assert normalized.raw_type == 'SERIAL'
        assert normalized.is_auto_increment

    def test_input_is_not_mutated(self):
        column = ParsedColumn('name', 'NVARCHAR(40)', default="N'anon'")
        table = ParsedTable('people', columns=[column])

        normalized = normalize_table(table, sqlserver.STRATEGY)

        assert normalized.columns[0].raw_type == 'VARCHAR(40)'
        assert normalized.columns[0].default == "'anon'"
        assert column.raw_type == 'NVARCHAR(40)'
        assert column.default == "N'anon'"
        assert table.columns[0] is column
