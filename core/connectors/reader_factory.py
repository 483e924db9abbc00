"""
Choose the TableReader for the configured storage backend.
"""

from typing import Optional

from core.connectors.supabase_reader import create_supabase_reader
from core.connectors.table_reader import TableReader, SQLiteTableReader


def create_reader(config, backend: Optional[str] = None) -> TableReader:
    """
    Build the reader for a backend.

    Args:
        config: AppConfig instance
        backend: 'sqlite' or 'supabase' (default: config's base.backend)

    Returns:
        TableReader

    Raises:
        ValueError: For an unknown backend or missing Supabase credentials
    """
    backend = backend or config.backend
    if backend == 'supabase':
        return create_supabase_reader(config)
    if backend == 'sqlite':
        return SQLiteTableReader(config.get_active_db_path())
    raise ValueError(f"Unknown backend '{backend}' (expected 'sqlite' or 'supabase')")
