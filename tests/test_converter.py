"""
Tests for the function-level pipeline entry points.

Test coverage:
- parse_to_ir: IR, builder warnings and skipped statements
- convert: option handling, dialect and target resolution, empty scripts
- migrate: end to end from two scripts
"""

import pytest

from core.errors import ParseError, UnsupportedDialectError, ValidationError, DiffError
from core.converter import parse_to_ir, convert, migrate
from core.options import ConvertOptions
from core.schema_ir import IRSchema, IREntity
from core.type_registry import CanonicalType

from conftest import attr

ORPHAN_SCRIPT = """
CREATE TABLE notes (
    id INT PRIMARY KEY,
    owner_id INT REFERENCES owners(id)
);
"""


class TestParseToIR:

    def test_returns_ir(self, users_script):
        result = parse_to_ir(users_script, 'sqlserver')

        assert isinstance(result.ir, IRSchema)
        assert result.ir.entity_names() == ['Users']
        assert result.warnings == []
        assert result.skipped == []

    def test_skipped_statements_are_reported(self):
        script = "CREATE TABLE good (id INT);\nCREATE TABLE bad id INT;"
        result = parse_to_ir(script, 'postgresql')

        assert result.ir.entity_names() == ['good']
        assert len(result.skipped) == 1
        assert result.rendered_warnings() == [
            "Skipped statement: Unsupported CREATE TABLE form for bad near 'id'"
        ]

    def test_unclosed_paren_keeps_following_tables(self):
        script = ("CREATE TABLE a (id INT); CREATE TABLE b (id INT); INSERT INTO a VALUES (1);\n"
                  "CREATE TABLE broken (;\nCREATE TABLE c (id INT)")
        result = parse_to_ir(script, 'mysql')

        assert result.ir.entity_names() == ['a', 'b', 'c']
        assert len(result.skipped) == 1
        assert 'CREATE TABLE broken' in result.skipped[0].statement

    def test_unresolved_reference_warning(self):
        result = parse_to_ir(ORPHAN_SCRIPT, 'postgresql')

        assert [w.kind.value for w in result.warnings] == ['unresolved_reference']
        assert result.warnings[0].target_table == 'owners'

    def test_unknown_dialect(self):
        with pytest.raises(UnsupportedDialectError) as exc_info:
            parse_to_ir("CREATE TABLE t (id INT)", 'db2')
        assert exc_info.value.name == 'db2'

    def test_dialect_alias(self):
        result = parse_to_ir("CREATE TABLE t (id INT)", 'postgres')
        assert result.ir.entity_names() == ['t']


class TestConvert:

    def test_enum_column_keeps_its_type(self, sample_scripts):
        output = convert(sample_scripts['postgresql'], 'postgresql', 'postgresql')

        assert "CREATE TYPE \"order_status\" AS ENUM ('pending', 'shipped', 'delivered');" in output
        assert "  \"status\" \"order_status\" DEFAULT 'pending'" in output

        again = parse_to_ir(output, 'postgresql').ir
        assert again.get_entity('accounts').get_attribute('status').enum == 'order_status'
        assert again.to_dict()['entities'][0]['attributes'][2]['enum'] == 'order_status'

    def test_sqlserver_to_postgresql(self, users_script, fixed_clock):
        output = convert(users_script, 'sqlserver', 'postgresql', clock=fixed_clock)

        assert output.startswith("-- Generated PostgreSQL schema\n-- Generated on: 2024-01-15T12:00:00+00:00\n")
        assert 'CREATE TABLE "Users" (' in output
        assert '"Id" SERIAL NOT NULL PRIMARY KEY' in output
        assert '"Email" VARCHAR(255) NOT NULL UNIQUE' in output
        assert '"CreatedAt" TIMESTAMP WITH TIME ZONE DEFAULT now()' in output

    def test_options_accept_camel_case(self, users_script):
        output = convert(users_script, 'sqlserver', 'supabase', {'withRLS': True})
        assert 'ENABLE ROW LEVEL SECURITY;' in output

    def test_options_object(self, users_script):
        output = convert(users_script, 'sqlserver', 'supabase', ConvertOptions(with_rls=False))
        assert 'ROW LEVEL SECURITY' not in output

    def test_unknown_option(self, users_script):
        with pytest.raises(ValidationError, match="Unknown option: withRls2"):
            convert(users_script, 'sqlserver', 'postgresql', {'withRls2': True})

    def test_non_boolean_flag(self, users_script):
        with pytest.raises(ValidationError):
            convert(users_script, 'sqlserver', 'postgresql', {'withRLS': 'yes'})

    def test_unknown_target(self, users_script):
        with pytest.raises(UnsupportedDialectError) as exc_info:
            convert(users_script, 'sqlserver', 'cobol')
        assert exc_info.value.kind == 'target'

    def test_empty_script(self):
        with pytest.raises(ParseError, match="No tables found in script"):
            convert("-- nothing here\n", 'postgresql', 'mysql')

    def test_all_statements_failed(self):
        with pytest.raises(ParseError) as exc_info:
            convert("CREATE TABLE bad id INT;", 'postgresql', 'mysql')

        assert "first error: Unsupported CREATE TABLE form" in exc_info.value.message
        assert 'CREATE TABLE bad' in exc_info.value.statement

    def test_every_dialect_to_every_sql_target(self, sample_scripts):
        for dialect, script in sample_scripts.items():
            for target in ('postgresql', 'mysql', 'sqlserver', 'sqlite', 'supabase'):
                assert 'CREATE TABLE' in convert(script, dialect, target), (dialect, target)


class TestMigrate:

    def test_from_two_scripts(self):
        old = parse_to_ir("CREATE TABLE t (id INT PRIMARY KEY, name VARCHAR(50));", 'postgresql').ir
        new = parse_to_ir("CREATE TABLE t (id INT PRIMARY KEY, name VARCHAR(50), age INT);", 'postgresql').ir

        result = migrate(old, new)

        assert result.success
        assert 'ALTER TABLE "t" ADD COLUMN "age" INTEGER;' in result.sql
        assert result.warnings == []

    def test_options_dict(self):
        old = IRSchema(entities=[IREntity('t', [attr('id', is_primary_key=True, is_optional=False)], ['id'])])
        new = IRSchema(entities=[IREntity('t', [
            attr('id', is_primary_key=True, is_optional=False),
            attr('label', CanonicalType.TEXT),
        ], ['id'])])

        result = migrate(old, new, {'schema': 'app'})

        assert 'ALTER TABLE "app"."t" ADD COLUMN "label" TEXT;' in result.sql

    def test_malformed_input(self):
        with pytest.raises(DiffError):
            migrate("not a schema", IRSchema())
