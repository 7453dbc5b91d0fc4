"""
Tests for migration script generation.

Test coverage:
- Transaction wrapper and fixed step order
- Statement forms for every step
- Dependency-aware table drops
- Schema-qualified names
- Failure reporting through MigrationResult
"""

import pytest

from core.differ import diff_schemas, generate_migration_sql
from core.options import ConvertOptions
from core.schema_ir import IRSchema, IREntity, IRIndex, IRReference, IRRelation
from core.type_registry import CanonicalType

from conftest import attr, pk, blog_schema

STEP_TITLES = [
    "-- Drop foreign keys",
    "-- Drop indexes",
    "-- Drop columns",
    "-- Drop tables",
    "-- Create tables",
    "-- Add columns",
    "-- Alter columns",
    "-- Create indexes",
    "-- Add foreign keys",
]


def evolved_blog():
    """blog schema touching every migration step"""
    schema = blog_schema()
    schema.entities.remove(schema.get_entity('comments'))

    posts = schema.get_entity('posts')
    posts.attributes.remove(posts.get_attribute('published'))
    posts.attributes.append(attr('views', default='0'))
    posts.get_attribute('title').length = 100
    posts.get_attribute('user_id').references = IRReference('users', 'id', on_delete='SET NULL')
    posts.indexes = [IRIndex(['user_id'])]

    schema.entities.append(IREntity('tags', [
        pk(),
        attr('post_id', is_optional=False, references=IRReference('posts', 'id')),
        attr('label', CanonicalType.STRING, length=30, is_optional=False),
    ], ['id']))
    schema.relations = [IRRelation('posts', 'users', ['user_id'], ['id'], on_delete='SET NULL')]
    return schema


@pytest.fixture
def evolved_result(blog_ir):
    return generate_migration_sql(diff_schemas(blog_ir, evolved_blog()))


class TestScriptLayout:

    def test_empty_diff(self, blog_ir):
        result = generate_migration_sql(diff_schemas(blog_ir, blog_schema()))
        assert result.success
        assert result.sql == "-- Migration script\nBEGIN;\n\nCOMMIT;\n"
        assert result.warnings == []

    def test_step_order(self, evolved_result):
        sql = evolved_result.sql
        positions = [sql.index(title) for title in STEP_TITLES]
        assert positions == sorted(positions)
        assert sql.startswith("-- Migration script\nBEGIN;\n")
        assert sql.endswith("COMMIT;\n")

    def test_statements(self, evolved_result):
        sql = evolved_result.sql
        expected = [
            'ALTER TABLE "posts" DROP CONSTRAINT IF EXISTS "fk_posts_user_id";',
            'DROP INDEX IF EXISTS "idx_posts_title";',
            'ALTER TABLE "posts" DROP COLUMN IF EXISTS "published";',
            'DROP TABLE IF EXISTS "comments" CASCADE;',
            'CREATE TABLE "tags" (\n  "id" SERIAL NOT NULL PRIMARY KEY,\n  "post_id" INTEGER NOT NULL,\n'
            '  "label" VARCHAR(30) NOT NULL\n);',
            'ALTER TABLE "posts" ADD COLUMN "views" INTEGER DEFAULT 0;',
            'ALTER TABLE "posts" ALTER COLUMN "title" TYPE VARCHAR(100) USING "title"::VARCHAR(100);',
            'CREATE INDEX "idx_posts_user_id" ON "posts" ("user_id");',
            'ALTER TABLE "tags" ADD CONSTRAINT "fk_tags_post_id" FOREIGN KEY ("post_id") REFERENCES "posts" ("id");',
            'ALTER TABLE "posts" ADD CONSTRAINT "fk_posts_user_id" FOREIGN KEY ("user_id") '
            'REFERENCES "users" ("id") ON DELETE SET NULL;',
        ]
        positions = [sql.index(statement) for statement in expected]
        assert positions == sorted(positions)

    def test_warnings(self, evolved_result):
        assert [w.kind.value for w in evolved_result.warnings] == ['data_loss', 'data_loss', 'type_narrowing']
        assert evolved_result.rendered_warnings()[1] == (
            "Dropping table comments causes permanent data loss of all its rows"
        )

    def test_to_dict(self, evolved_result):
        data = evolved_result.to_dict()
        assert data['success'] is True
        assert data['error'] is None
        assert data['warnings'][2]['reason'] == "Length reduction: 200 -> 100"


class TestTableDrops:

    def test_dependents_dropped_first(self, blog_ir):
        result = generate_migration_sql(diff_schemas(blog_ir, IRSchema()))

        assert result.success
        sql = result.sql
        assert sql.index('DROP TABLE IF EXISTS "comments" CASCADE;') \
            < sql.index('DROP TABLE IF EXISTS "posts" CASCADE;') \
            < sql.index('DROP TABLE IF EXISTS "users" CASCADE;')
        assert [w.table for w in result.warnings] == ['comments', 'posts', 'users']
        assert all(w.column is None for w in result.warnings)


class TestColumnAlterations:

    def migrate(self, blog_ir, change):
        new = blog_schema()
        change(new)
        return generate_migration_sql(diff_schemas(blog_ir, new))

    def test_widening_has_no_warning(self, blog_ir):
        result = self.migrate(blog_ir, lambda s: setattr(
            s.get_entity('comments').get_attribute('post_id'), 'type', CanonicalType.BIGINT))
        assert 'ALTER COLUMN "post_id" TYPE BIGINT USING "post_id"::BIGINT;' in result.sql
        assert result.warnings == []

    def test_set_not_null_without_default(self, blog_ir):
        result = self.migrate(blog_ir, lambda s: setattr(
            s.get_entity('comments').get_attribute('body'), 'is_optional', False))

        assert 'ALTER TABLE "comments" ALTER COLUMN "body" SET NOT NULL;' in result.sql
        assert len(result.warnings) == 1
        assert (result.warnings[0].old_type, result.warnings[0].new_type) == ('NULL', 'NOT NULL')

    def test_drop_not_null(self, blog_ir):
        result = self.migrate(blog_ir, lambda s: setattr(
            s.get_entity('posts').get_attribute('title'), 'is_optional', True))
        assert 'ALTER TABLE "posts" ALTER COLUMN "title" DROP NOT NULL;' in result.sql

    def test_defaults(self, blog_ir):
        def change(schema):
            schema.get_entity('posts').get_attribute('published').default = None
            schema.get_entity('comments').get_attribute('body').default = "'n/a'"

        sql = self.migrate(blog_ir, change).sql

        assert 'ALTER TABLE "posts" ALTER COLUMN "published" DROP DEFAULT;' in sql
        assert "ALTER TABLE \"comments\" ALTER COLUMN \"body\" SET DEFAULT 'n/a';" in sql

    def test_unique_toggle(self, blog_ir):
        def change(schema):
            schema.get_entity('users').get_attribute('email').is_unique = False
            schema.get_entity('posts').get_attribute('title').is_unique = True

        sql = self.migrate(blog_ir, change).sql

        assert 'ALTER TABLE "users" DROP CONSTRAINT IF EXISTS "users_email_key";' in sql
        assert 'ALTER TABLE "posts" ADD CONSTRAINT "posts_title_key" UNIQUE ("title");' in sql

    def test_not_null_column_without_default(self, blog_ir):
        result = self.migrate(blog_ir, lambda s: s.get_entity('users').attributes.append(
            attr('age', is_optional=False)))

        assert 'ALTER TABLE "users" ADD COLUMN "age" INTEGER NOT NULL;' in result.sql
        assert result.warnings[0].old_type == '(absent)'
        assert result.warnings[0].new_type == 'INTEGER'


class TestQualifiedNames:

    def test_schema_option(self, blog_ir):
        def change(schema):
            schema.get_entity('posts').indexes = []

        new = blog_schema()
        change(new)
        result = generate_migration_sql(diff_schemas(blog_ir, new), ConvertOptions(schema='app'))

        assert 'DROP INDEX IF EXISTS "app"."idx_posts_title";' in result.sql


class TestForeignKeysToMissingTables:

    def test_skipped_with_warning(self, blog_ir):
        new = blog_schema()
        new.entities.append(IREntity('audit', [
            pk(), attr('actor_id', references=IRReference('actors', 'id')),
        ], ['id']))

        result = generate_migration_sql(diff_schemas(blog_ir, new))

        assert '-- Skipped foreign key fk_audit_actor_id: target actors is not defined' in result.sql
        assert 'REFERENCES "actors"' not in result.sql
        assert [w.kind.value for w in result.warnings] == ['unresolved_reference']
        assert result.success


class TestFailures:

    def test_generation_error_is_reported(self, blog_ir, monkeypatch):
        def broken(attr, target):
            raise RuntimeError("renderer unavailable")

        monkeypatch.setattr('core.differ.render_type', broken)
        new = blog_schema()
        new.get_entity('posts').get_attribute('title').length = 50

        result = generate_migration_sql(diff_schemas(blog_ir, new))

        assert result.success is False
        assert result.sql == ''
        assert result.error == "renderer unavailable"
