"""
DbConfig - Relational store connection settings.
"""

import os
from dataclasses import dataclass
from typing import List


@dataclass
class DbConfig:
    """
    MySQL connection configuration.

    Attributes:
        host: Database host
        port: Database port
        user: Database user
        password: Database password
        database: Schema name
        pool_size: Connections kept in the pool
        table_prefix: Prefix prepended to every table name
    """
    host: str = 'localhost'
    port: int = 3306
    user: str = ''
    password: str = ''
    database: str = ''
    pool_size: int = 8
    table_prefix: str = ''

    @classmethod
    def from_env(cls) -> 'DbConfig':
        """Build configuration from SQL_* environment variables."""
        return cls(
            host=os.getenv('SQL_HOST', 'localhost'),
            port=int(os.getenv('SQL_PORT', '3306')),
            user=os.getenv('SQL_USER', ''),
            password=os.getenv('SQL_PASSWORD', ''),
            database=os.getenv('SQL_DATABASE', ''),
            pool_size=int(os.getenv('SQL_POOL_SIZE', '8')),
            table_prefix=os.getenv('SQL_TABLE_PREFIX', ''),
        )

    def validate(self) -> List[str]:
        errors = []
        if not self.user:
            errors.append("SQL_USER is not set")
        if not self.database:
            errors.append("SQL_DATABASE is not set")
        if not 1 <= self.pool_size <= 32:
            errors.append("SQL_POOL_SIZE must be between 1 and 32")
        return errors
