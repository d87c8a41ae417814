"""
Persistence layer: typed records, repositories and schema migrations.
"""
