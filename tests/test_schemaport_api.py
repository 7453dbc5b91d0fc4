"""
Tests for the SchemaPort facade.
"""

from schemaport import SchemaPort
from core.options import ConvertOptions

from conftest import blog_schema


class TestSchemaPort:

    def test_convert_with_clock(self, users_script, fixed_clock):
        port = SchemaPort(clock=fixed_clock)
        output = port.convert(users_script, 'sqlserver', 'postgresql')
        assert "-- Generated on: 2024-01-15T12:00:00+00:00" in output

    def test_per_call_overrides(self, users_script):
        port = SchemaPort(options=ConvertOptions(schema='app'))

        qualified = port.convert(users_script, 'sqlserver', 'postgresql')
        overridden = port.convert(users_script, 'sqlserver', 'postgresql', schema='crm')

        assert 'CREATE TABLE "app"."Users"' in qualified
        assert 'CREATE TABLE "crm"."Users"' in overridden
        assert port.options.schema == 'app'

    def test_emit_accepts_ir_dict(self, blog_ir):
        port = SchemaPort()
        assert 'model posts {' in port.emit(blog_ir.to_dict(), 'prisma')

    def test_migrate_and_report(self, blog_ir):
        new = blog_schema()
        new.get_entity('users').attributes.pop()

        port = SchemaPort()
        result = port.migrate(blog_ir, new)
        report = port.report(blog_ir, new)

        assert 'ALTER TABLE "users" DROP COLUMN IF EXISTS "created_at";' in result.sql
        assert report.counts['columns_removed'] == 1
        assert report.warning_count == 1

    def test_listings(self):
        assert 'oracle' in SchemaPort.dialects()
        assert 'mermaid' in SchemaPort.targets()
