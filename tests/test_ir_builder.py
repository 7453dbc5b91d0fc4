"""
Tests for IR construction from normalized parse records.

Test coverage:
- Entity and attribute mapping (types, keys, optionality)
- Forward references resolved by the second pass
- One-to-one vs one-to-many relation kinds
- Unresolved foreign key targets recorded as warnings
- Enum-typed columns, uniques, checks, indexes and comments
"""

import pytest

from core.ddl_parser import ParsedTable, ParsedColumn, ParsedConstraint, ParsedIndex, ParsedEnum
from core.ir_builder import IRBuilder
from core.type_registry import CanonicalType
from core.diagnostics import WarningKind


def serial_pk(name='id'):
    return ParsedColumn(name, 'SERIAL', nullable=False, is_primary_key=True, is_auto_increment=True)


def fk(columns, table, referenced=None, **kwargs):
    return ParsedConstraint('FOREIGN KEY', columns, referenced_table=table,
                            referenced_columns=referenced or [], **kwargs)


@pytest.fixture
def builder():
    return IRBuilder('postgresql')


class TestEntities:

    def test_attribute_types_and_flags(self, builder):
        table = ParsedTable('products', columns=[
            serial_pk(),
            ParsedColumn('sku', 'VARCHAR(32)', nullable=False, is_unique=True),
            ParsedColumn('price', 'DECIMAL(10,2)', default='0'),
            ParsedColumn('description', 'TEXT'),
        ])

        ir = builder.build([table])
        products = ir.get_entity('products')

        assert products.attribute_names() == ['id', 'sku', 'price', 'description']
        assert products.primary_key == ['id']

        id_attr = products.get_attribute('id')
        assert id_attr.type == CanonicalType.INTEGER
        assert id_attr.is_auto_increment
        assert not id_attr.is_optional

        sku = products.get_attribute('sku')
        assert (sku.type, sku.length, sku.is_unique, sku.is_optional) == (CanonicalType.STRING, 32, True, False)

        price = products.get_attribute('price')
        assert (price.type, price.precision, price.scale, price.default) == (CanonicalType.DECIMAL, 10, 2, '0')

        assert products.get_attribute('description').is_optional

    def test_table_level_primary_key_forces_not_optional(self, builder):
        table = ParsedTable('codes', columns=[ParsedColumn('code', 'CHAR(3)')],
                            constraints=[ParsedConstraint('PRIMARY KEY', ['code'])])

        code = builder.build([table]).get_entity('codes').get_attribute('code')

        assert code.is_primary_key
        assert not code.is_optional

    def test_unique_constraints(self, builder):
        table = ParsedTable('members', columns=[
            serial_pk(),
            ParsedColumn('email', 'VARCHAR(255)'),
            ParsedColumn('org_id', 'INTEGER'),
            ParsedColumn('handle', 'VARCHAR(40)'),
        ], constraints=[
            ParsedConstraint('UNIQUE', ['EMAIL']),
            ParsedConstraint('UNIQUE', ['org_id', 'handle']),
        ])

        members = builder.build([table]).get_entity('members')

        assert members.get_attribute('email').is_unique
        assert members.uniques == [['org_id', 'handle']]

    def test_enum_typed_column_becomes_string(self, builder):
        table = ParsedTable('orders', columns=[serial_pk(), ParsedColumn('status', 'order_status')])

        ir = builder.build([table], [ParsedEnum('Order_Status', ['new', 'paid'])])

        assert ir.get_entity('orders').get_attribute('status').type == CanonicalType.STRING
        assert ir.get_entity('orders').get_attribute('status').enum == 'Order_Status'
        assert [(e.name, e.values) for e in ir.enums] == [('Order_Status', ['new', 'paid'])]

    def test_checks_indexes_and_comments(self, builder):
        table = ParsedTable('items', columns=[
            serial_pk(),
            ParsedColumn('qty', 'INTEGER', comment='Units on hand'),
        ], constraints=[
            ParsedConstraint('CHECK', [], name='ck_qty', expression='qty >= 0'),
        ], indexes=[ParsedIndex('idx_items_qty', ['QTY'], unique=False)], comment='Stock items')

        ir = builder.build([table])
        items = ir.get_entity('items')

        assert [(c.table, c.expression, c.name) for c in ir.checks] == [('items', 'qty >= 0', 'ck_qty')]
        assert [(i.name, i.columns) for i in items.indexes] == [('idx_items_qty', ['qty'])]
        assert items.comment == 'Stock items'
        assert [(c.column, c.text) for c in ir.comments] == [(None, 'Stock items'), ('qty', 'Units on hand')]


class TestRelations:

    def test_forward_reference_resolves(self, builder):
        orders = ParsedTable('orders', columns=[serial_pk(), ParsedColumn('customer_id', 'INTEGER')],
                             constraints=[fk(['customer_id'], 'customers', ['id'], on_delete='CASCADE')])
        customers = ParsedTable('customers', columns=[serial_pk()])

        ir = builder.build([orders, customers])

        assert builder.warnings == []
        assert len(ir.relations) == 1
        relation = ir.relations[0]
        assert (relation.source_entity, relation.target_entity) == ('orders', 'customers')
        assert (relation.source_columns, relation.target_columns) == (['customer_id'], ['id'])
        assert relation.kind == '1-N'
        assert relation.on_delete == 'CASCADE'

        reference = ir.get_entity('orders').get_attribute('customer_id').references
        assert (reference.table, reference.column, reference.on_delete) == ('customers', 'id', 'CASCADE')

    def test_unique_source_is_one_to_one(self, builder):
        profiles = ParsedTable('profiles', columns=[
            serial_pk(), ParsedColumn('user_id', 'INTEGER', is_unique=True),
        ], constraints=[fk(['user_id'], 'users', ['id'])])
        users = ParsedTable('users', columns=[serial_pk()])

        ir = builder.build([users, profiles])

        assert ir.relations[0].kind == '1-1'

    def test_missing_column_list_uses_target_primary_key(self, builder):
        posts = ParsedTable('posts', columns=[serial_pk(), ParsedColumn('author', 'INTEGER')],
                            constraints=[fk(['author'], 'Authors')])
        authors = ParsedTable('authors', columns=[serial_pk('author_id')])

        relation = builder.build([posts, authors]).relations[0]

        assert relation.target_entity == 'authors'
        assert relation.target_columns == ['author_id']

    def test_unresolved_target_is_kept_with_warning(self, builder):
        notes = ParsedTable('notes', columns=[serial_pk(), ParsedColumn('owner_id', 'INTEGER')],
                            constraints=[fk(['owner_id'], 'ghosts', ['id'])])

        ir = builder.build([notes])

        assert ir.relations[0].target_entity == 'ghosts'
        assert len(builder.warnings) == 1
        warning = builder.warnings[0]
        assert warning.kind == WarningKind.UNRESOLVED_REFERENCE
        assert (warning.table, warning.target_table) == ('notes', 'ghosts')
        assert warning.render() == (
            "Foreign key notes(owner_id) references ghosts(id), which does not exist in the schema"
        )

    def test_warnings_reset_between_builds(self, builder):
        notes = ParsedTable('notes', columns=[ParsedColumn('owner_id', 'INTEGER')],
                            constraints=[fk(['owner_id'], 'ghosts', ['id'])])
        builder.build([notes])
        builder.build([ParsedTable('plain', columns=[serial_pk()])])
        assert builder.warnings == []

    def test_composite_foreign_key_has_no_column_reference(self, builder):
        lines = ParsedTable('lines', columns=[
            ParsedColumn('order_id', 'INTEGER'), ParsedColumn('line_no', 'INTEGER'),
        ], constraints=[ParsedConstraint('PRIMARY KEY', ['order_id', 'line_no'])])
        notes = ParsedTable('line_notes', columns=[
            serial_pk(), ParsedColumn('order_id', 'INTEGER'), ParsedColumn('line_no', 'INTEGER'),
        ], constraints=[fk(['order_id', 'line_no'], 'lines', ['order_id', 'line_no'])])

        ir = builder.build([lines, notes])

        assert ir.relations[0].target_columns == ['order_id', 'line_no']
        assert ir.get_entity('line_notes').get_attribute('order_id').references is None
