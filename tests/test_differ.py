"""
Tests for schema diffing.

Test coverage:
- Added, removed and modified tables
- Column facets (nullability, type, default, unique, reference)
- Index and foreign key changes
- Renames show up as drop plus add
- Malformed input raises DiffError
- Summary and dict views
"""

import pytest

from core.errors import DiffError, ErrorCode
from core.differ import diff_schemas, ColumnFacet
from core.schema_ir import IRSchema, IREntity, IRIndex
from core.type_registry import CanonicalType

from conftest import attr, pk, blog_schema


def modified(change):
    """Fresh blog schema with `change` applied"""
    schema = blog_schema()
    change(schema)
    return schema


class TestTableLevel:

    def test_identical_schemas(self, blog_ir):
        diff = diff_schemas(blog_ir, blog_schema())
        assert diff.is_empty
        assert diff.summary() == ["No changes detected"]

    def test_single_added_column(self, blog_ir):
        new = modified(lambda s: s.get_entity('posts').attributes.append(
            attr('views', CanonicalType.BIGINT, default='0')))

        diff = diff_schemas(blog_ir, new)

        assert diff.tables_to_add == []
        assert diff.tables_to_remove == []
        assert len(diff.tables_to_modify) == 1
        table = diff.tables_to_modify[0]
        assert table.table_name == 'posts'
        assert len(table.columns_to_add) == 1
        assert table.columns_to_add[0].name == 'views'
        assert table.columns_to_add[0].type == CanonicalType.BIGINT
        assert table.columns_to_remove == []
        assert table.columns_to_modify == []

    def test_everything_removed(self, blog_ir):
        diff = diff_schemas(blog_ir, IRSchema())
        assert [e.name for e in diff.tables_to_remove] == ['comments', 'posts', 'users']
        assert diff.tables_to_modify == []

    def test_added_table(self, blog_ir):
        new = modified(lambda s: s.entities.append(IREntity('tags', [pk()], ['id'])))
        diff = diff_schemas(blog_ir, new)
        assert [e.name for e in diff.tables_to_add] == ['tags']
        assert diff.summary() == ["Tables to add: tags"]

    def test_rename_is_drop_plus_add(self, blog_ir):
        def rename(schema):
            schema.get_entity('comments').attributes[2].name = 'content'

        table = diff_schemas(blog_ir, modified(rename)).tables_to_modify[0]

        assert [c.name for c in table.columns_to_add] == ['content']
        assert [c.name for c in table.columns_to_remove] == ['body']

    def test_inputs_are_kept_on_the_diff(self, blog_ir):
        new = blog_schema()
        diff = diff_schemas(blog_ir, new)
        assert diff.old is blog_ir
        assert diff.new is new


class TestColumnFacets:

    def facets(self, old, new, table='posts', column='title'):
        diff = diff_schemas(old, new)
        for table_diff in diff.tables_to_modify:
            if table_diff.table_name == table:
                for change in table_diff.columns_to_modify:
                    if change.name == column:
                        return change.facets
        return []

    def test_type_and_nullability(self, blog_ir):
        def change(schema):
            title = schema.get_entity('posts').get_attribute('title')
            title.length = 100
            title.is_optional = True

        assert self.facets(blog_ir, modified(change)) == [ColumnFacet.NULLABILITY, ColumnFacet.TYPE]

    def test_default(self, blog_ir):
        new = modified(lambda s: setattr(s.get_entity('posts').get_attribute('published'), 'default', 'true'))
        assert self.facets(blog_ir, new, column='published') == [ColumnFacet.DEFAULT]

    def test_unique(self, blog_ir):
        new = modified(lambda s: setattr(s.get_entity('users').get_attribute('email'), 'is_unique', False))
        assert self.facets(blog_ir, new, table='users', column='email') == [ColumnFacet.UNIQUE]

    def test_reference(self, blog_ir):
        new = modified(lambda s: setattr(s.relations[0], 'on_delete', 'SET NULL'))

        diff = diff_schemas(blog_ir, new)
        table = diff.tables_to_modify[0]

        assert self.facets(blog_ir, new, column='user_id') == [ColumnFacet.REFERENCE]
        assert [fk.on_delete for fk in table.relations_to_remove] == ['CASCADE']
        assert [fk.on_delete for fk in table.relations_to_add] == ['SET NULL']

    def test_empty_default_equals_none(self, blog_ir):
        new = modified(lambda s: setattr(s.get_entity('comments').get_attribute('body'), 'default', ''))
        assert diff_schemas(blog_ir, new).is_empty


class TestIndexes:

    def test_index_replaced(self, blog_ir):
        def change(schema):
            schema.get_entity('posts').indexes = [IRIndex(['user_id'])]

        table = diff_schemas(blog_ir, modified(change)).tables_to_modify[0]

        assert [i.columns for i in table.indexes_to_add] == [['user_id']]
        assert [i.columns for i in table.indexes_to_remove] == [['title']]

    def test_uniqueness_change_counts_as_replacement(self, blog_ir):
        new = modified(lambda s: setattr(s.get_entity('posts').indexes[0], 'unique', True))
        table = diff_schemas(blog_ir, new).tables_to_modify[0]
        assert len(table.indexes_to_add) == 1
        assert len(table.indexes_to_remove) == 1


class TestInvalidInput:

    def test_invalid_old_schema(self, blog_ir):
        broken = IRSchema(entities=[IREntity('t', [pk()], ['id']), IREntity('t', [pk()], ['id'])])

        with pytest.raises(DiffError) as exc_info:
            diff_schemas(broken, blog_ir)

        assert exc_info.value.message.startswith("Invalid old schema: Duplicate entity name")
        assert exc_info.value.details['schema'] == 'old'
        assert exc_info.value.code == ErrorCode.DIFF_ERROR

    def test_invalid_new_schema(self, blog_ir):
        broken = IRSchema(entities=[IREntity('t', [attr('id', is_primary_key=True)], ['id'])])
        with pytest.raises(DiffError, match="Invalid new schema"):
            diff_schemas(blog_ir, broken)


class TestViews:

    def test_summary(self, blog_ir):
        def change(schema):
            posts = schema.get_entity('posts')
            posts.attributes.append(attr('views'))
            posts.get_attribute('title').length = 100
            schema.entities.remove(schema.get_entity('comments'))
            schema.relations = schema.relations[:1]

        assert diff_schemas(blog_ir, modified(change)).summary() == [
            "Tables to remove: comments",
            "Tables to modify: posts",
            "  posts: add columns views",
            "  posts: modify column title (type)",
        ]

    def test_to_dict(self, blog_ir):
        new = modified(lambda s: setattr(s.relations[0], 'on_delete', None))
        data = diff_schemas(blog_ir, new).to_dict()

        assert data['tables_to_add'] == []
        assert data['tables_to_modify'][0]['table_name'] == 'posts'
        assert data['tables_to_modify'][0]['columns_to_modify'] == [{'name': 'user_id', 'facets': ['reference']}]
        assert data['tables_to_modify'][0]['relations_to_add'] == ['fk_posts_user_id']
