"""SchemaPort command line tools"""
