from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite


def insert_ignore(dialect_name: str, table: Table, conflict_columns: list[str]):
    """INSERT ... ON CONFLICT (conflict_columns) DO NOTHING for the given dialect."""
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    raise NotImplementedError(f"insert_ignore is not supported on {dialect_name}")
