"""Infrastructure - settings, environment loading, SQLite access"""
