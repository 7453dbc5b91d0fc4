
import unittest
from core.type_registry import TypeRegistry, CanonicalType, TypeInfo
from core.schema_ir import IRAttribute

class TestTypeRegistryMatrix(unittest.TestCase):

    def assertMapping(self, dialect, source_type, expected_ir, **expected):
        info = TypeRegistry.map_to_ir(dialect, source_type)
        self.assertEqual(info.ir_type, expected_ir, f"{dialect}: {source_type} -> {info.ir_type} (Expected {expected_ir})")
        for field, value in expected.items():
            self.assertEqual(getattr(info, field), value, f"{dialect}: {source_type} {field}")

    def assertReverseMapping(self, target, type_info, expected_target_str):
        rendered = TypeRegistry.map_from_ir(target, type_info)
        self.assertEqual(rendered, expected_target_str, f"{target}: {type_info!r} -> {rendered}")

    # --- POSTGRES ---
    def test_postgres_matrix(self):
        self.assertMapping('postgresql', 'boolean', CanonicalType.BOOLEAN)
        self.assertMapping('postgresql', 'uuid', CanonicalType.UUID)
        self.assertMapping('postgresql', 'jsonb', CanonicalType.JSON)
        self.assertMapping('postgresql', 'timestamp with time zone', CanonicalType.TIMESTAMP)
        self.assertMapping('postgresql', 'bytea', CanonicalType.BINARY)
        self.assertMapping('postgresql', 'VARCHAR(100)', CanonicalType.STRING, length=100)
        self.assertMapping('postgresql', 'character varying(40)', CanonicalType.STRING, length=40)
        self.assertMapping('postgresql', 'NUMERIC(10,2)', CanonicalType.DECIMAL, precision=10, scale=2)
        # Arrays have no portable column type
        self.assertMapping('postgresql', 'text[]', CanonicalType.JSON)

    # --- MYSQL ---
    def test_mysql_matrix(self):
        # Full spelling beats the base name
        self.assertMapping('mysql', 'tinyint(1)', CanonicalType.BOOLEAN)
        self.assertMapping('mysql', 'tinyint(4)', CanonicalType.INTEGER)
        self.assertMapping('mysql', 'datetime', CanonicalType.TIMESTAMP)
        self.assertMapping('mysql', 'longtext', CanonicalType.TEXT)
        self.assertMapping('mysql', 'varbinary', CanonicalType.BINARY)
        self.assertMapping('mysql', 'json', CanonicalType.JSON)

    # --- SQLITE ---
    def test_sqlite_matrix(self):
        self.assertMapping('sqlite', 'integer', CanonicalType.INTEGER)
        self.assertMapping('sqlite', 'text', CanonicalType.TEXT)
        self.assertMapping('sqlite', 'blob', CanonicalType.BINARY)
        self.assertMapping('sqlite', 'boolean', CanonicalType.BOOLEAN)
        self.assertMapping('sqlite', 'datetime', CanonicalType.TIMESTAMP)
        # Not in any table, resolved by keyword
        self.assertMapping('sqlite', 'mediumint', CanonicalType.INTEGER)
        self.assertMapping('sqlite', 'nchar(10)', CanonicalType.STRING, length=10)

    # --- ORACLE ---
    def test_oracle_matrix(self):
        self.assertMapping('oracle', 'NUMBER(10,2)', CanonicalType.DECIMAL, precision=10, scale=2)
        self.assertMapping('oracle', 'VARCHAR2(30)', CanonicalType.STRING, length=30)
        self.assertMapping('oracle', 'CLOB', CanonicalType.TEXT)
        self.assertMapping('oracle', 'BLOB', CanonicalType.BINARY)

    # --- MSSQL ---
    def test_mssql_matrix(self):
        self.assertMapping('sqlserver', 'bit', CanonicalType.BOOLEAN)
        self.assertMapping('sqlserver', 'uniqueidentifier', CanonicalType.UUID)
        self.assertMapping('sqlserver', 'nvarchar(max)', CanonicalType.TEXT)
        self.assertMapping('sqlserver', 'money', CanonicalType.DECIMAL, precision=19, scale=4)
        self.assertMapping('sqlserver', 'datetime2', CanonicalType.TIMESTAMP)

    # --- MONGODB ---
    def test_mongodb_matrix(self):
        self.assertMapping('mongodb', 'objectId', CanonicalType.UUID)
        self.assertMapping('mongodb', 'String', CanonicalType.TEXT)
        self.assertMapping('mongodb', 'array', CanonicalType.JSON)

    # --- IR -> TARGET ---
    def test_reverse_strings(self):
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.STRING, length=100), 'VARCHAR(100)')
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.STRING), 'VARCHAR')
        self.assertReverseMapping('mysql', TypeInfo(CanonicalType.STRING), 'VARCHAR(255)')
        self.assertReverseMapping('sqlserver', TypeInfo(CanonicalType.STRING, length=50), 'NVARCHAR(50)')
        self.assertReverseMapping('sqlserver', TypeInfo(CanonicalType.TEXT), 'NVARCHAR(MAX)')
        # SQLite ignores declared lengths
        self.assertReverseMapping('sqlite', TypeInfo(CanonicalType.STRING, length=50), 'VARCHAR')

    def test_reverse_decimals(self):
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.DECIMAL, 10, 2), 'NUMERIC(10,2)')
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.DECIMAL, 10), 'NUMERIC(10)')
        self.assertReverseMapping('mysql', TypeInfo(CanonicalType.DECIMAL, 12, 4), 'DECIMAL(12,4)')
        self.assertReverseMapping('sqlite', TypeInfo(CanonicalType.DECIMAL, 10, 2), 'NUMERIC')

    def test_reverse_other_types(self):
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.TIMESTAMP), 'TIMESTAMP WITH TIME ZONE')
        self.assertReverseMapping('postgresql', TypeInfo(CanonicalType.JSON), 'JSONB')
        self.assertReverseMapping('mysql', TypeInfo(CanonicalType.BOOLEAN), 'TINYINT(1)')
        self.assertReverseMapping('mysql', TypeInfo(CanonicalType.UUID), 'CHAR(36)')
        self.assertReverseMapping('sqlserver', TypeInfo(CanonicalType.BOOLEAN), 'BIT')
        self.assertReverseMapping('sqlite', TypeInfo(CanonicalType.NUMBER), 'REAL')

    def test_unknown_target_falls_back_to_text(self):
        self.assertReverseMapping('db2', TypeInfo(CanonicalType.UUID), 'TEXT')

    # --- DEFAULTS ---
    def test_default_mapping(self):
        self.assertEqual(TypeRegistry.map_default('mysql', 'now()'), 'CURRENT_TIMESTAMP')
        self.assertEqual(TypeRegistry.map_default('sqlserver', 'now()'), 'GETDATE()')
        self.assertEqual(TypeRegistry.map_default('sqlserver', 'gen_random_uuid()'), 'NEWID()')
        self.assertEqual(TypeRegistry.map_default('mysql', 'CURRENT_USER'), '(CURRENT_USER())')
        self.assertEqual(TypeRegistry.map_default('postgresql', "'draft'"), "'draft'")
        self.assertIsNone(TypeRegistry.map_default('postgresql', None))

    def test_type_info_of_attribute(self):
        attr = IRAttribute('price', CanonicalType.DECIMAL, precision=8, scale=2)
        self.assertEqual(TypeInfo.of(attr), TypeInfo(CanonicalType.DECIMAL, 8, 2))
        self.assertNotEqual(TypeInfo.of(attr), TypeInfo(CanonicalType.DECIMAL, 8, 3))


class TestNarrowing(unittest.TestCase):

    def assertNarrowing(self, old, new, reason):
        narrowing, actual = TypeRegistry.is_narrowing(old, new)
        self.assertTrue(narrowing, f"{old!r} -> {new!r} should narrow")
        self.assertEqual(actual, reason)

    def assertWidening(self, old, new):
        self.assertEqual(TypeRegistry.is_narrowing(old, new), (False, None))

    def test_length_reduction(self):
        self.assertNarrowing(TypeInfo(CanonicalType.STRING, length=255),
                             TypeInfo(CanonicalType.STRING, length=100),
                             "Length reduction: 255 -> 100")
        self.assertWidening(TypeInfo(CanonicalType.STRING, length=100),
                            TypeInfo(CanonicalType.STRING, length=255))

    def test_numeric_range(self):
        self.assertNarrowing(TypeInfo(CanonicalType.BIGINT), TypeInfo(CanonicalType.INTEGER),
                             "Range loss: bigint -> integer")
        self.assertWidening(TypeInfo(CanonicalType.INTEGER), TypeInfo(CanonicalType.BIGINT))
        self.assertNarrowing(TypeInfo(CanonicalType.DECIMAL, 10, 2), TypeInfo(CanonicalType.DECIMAL, 8, 2),
                             "Precision reduction: 10 -> 8")

    def test_text_to_string(self):
        self.assertNarrowing(TypeInfo(CanonicalType.TEXT), TypeInfo(CanonicalType.STRING, length=50),
                             "Length restriction: text -> string")

    def test_timestamp_to_date(self):
        self.assertNarrowing(TypeInfo(CanonicalType.TIMESTAMP), TypeInfo(CanonicalType.DATE),
                             "Time component loss: timestamp -> date")
        self.assertWidening(TypeInfo(CanonicalType.DATE), TypeInfo(CanonicalType.TIMESTAMP))

    def test_anything_to_text_is_safe(self):
        self.assertWidening(TypeInfo(CanonicalType.INTEGER), TypeInfo(CanonicalType.TEXT))
        self.assertWidening(TypeInfo(CanonicalType.INTEGER), TypeInfo(CanonicalType.STRING))

    def test_unlisted_pair_gets_generic_reason(self):
        self.assertNarrowing(TypeInfo(CanonicalType.JSON), TypeInfo(CanonicalType.INTEGER),
                             "Values of type json may not convert to integer")


if __name__ == '__main__':
    unittest.main()
