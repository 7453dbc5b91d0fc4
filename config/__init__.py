"""SchemaPort configuration"""
