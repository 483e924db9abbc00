"""
Supabase-backed TableReader (PostgREST queries through supabase-py).
"""

import logging

from supabase import create_client, Client

from core.connectors.table_reader import TableReader, QueryFilter, validate_identifier


class SupabaseTableReader(TableReader):
    """TableReader issuing `.in_()` selects against a Supabase project."""

    def __init__(self, client: Client):
        self.client = client
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_credentials(cls, url: str, key: str) -> 'SupabaseTableReader':
        return cls(create_client(url, key))

    def select_in(self, table, columns, in_column, values, filters=()):
        if not values:
            return []

        validate_identifier(table)
        query = (
            self.client.table(table)
            .select(','.join(validate_identifier(column) for column in columns))
            .in_(validate_identifier(in_column), list(values))
        )

        for query_filter in filters:
            query = self._apply_filter(query, query_filter)

        response = query.execute()
        return list(getattr(response, 'data', None) or [])

    @staticmethod
    def _apply_filter(query, query_filter: QueryFilter):
        if query_filter.op == 'not_null':
            return query.not_.is_(query_filter.column, 'null')
        if query_filter.op == 'eq':
            return query.eq(query_filter.column, query_filter.value)
        if query_filter.op == 'gt':
            return query.gt(query_filter.column, query_filter.value)
        if query_filter.op == 'gte':
            return query.gte(query_filter.column, query_filter.value)
        return query.lt(query_filter.column, query_filter.value)


def create_supabase_reader(config) -> SupabaseTableReader:
    """
    Build a reader from the credentials named in config.

    Args:
        config: AppConfig instance

    Returns:
        SupabaseTableReader

    Raises:
        ValueError: If the credentials are not set in the environment
    """
    credentials = config.get_supabase_credentials()
    return SupabaseTableReader.from_credentials(credentials['url'], credentials['key'])
