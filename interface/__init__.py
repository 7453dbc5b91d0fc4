"""SchemaPort HTTP interface"""
