"""
PhotoDb - MySQL persistence for photo records, tags and their links.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

import mysql.connector
from mysql.connector import pooling

from .db_config import DbConfig
from .photo_record import PhotoRecord, PhotoStatus, Tag
from .retry_policy import transient_retry

PHOTO_COLUMNS = (
    'pk', 'status', 'photo_name', 'full_key', 'thumbnail_key', 'gallery_key',
    'camera_make', 'camera_model', 'original_created_at',
    'f_number', 'iso', 'focal_length', 'exposure_time',
)

METADATA_COLUMNS = (
    'camera_make', 'camera_model', 'f_number', 'iso', 'focal_length', 'exposure_time',
)

ORDERS = ('asc', 'desc')


def to_db_time(value: datetime) -> datetime:
    """Naive UTC datetime for DATETIME columns."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class PhotoDb:
    """
    Photo record store backed by a lazily created connection pool.

    Every write is a single statement, so each record mutation is atomic.
    """

    def __init__(self, config: DbConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.connection_pool = None

        prefix = config.table_prefix
        self.photos_table = f"{prefix}photos"
        self.tags_table = f"{prefix}tags"
        self.photo_tags_table = f"{prefix}photo_tags"

    def initialize_pool(self) -> None:
        """
        Initialize the connection pool lazily if it hasn't been created yet.
        """
        if not self.connection_pool:
            self.logger.debug("Initializing connection pool...")
            try:
                self.connection_pool = pooling.MySQLConnectionPool(
                    pool_name="photo_db_pool",
                    pool_size=self.config.pool_size,
                    user=self.config.user,
                    password=self.config.password,
                    host=self.config.host,
                    port=self.config.port,
                    database=self.config.database,
                )
            except mysql.connector.Error as err:
                self.logger.error(f"Failed to initialize connection pool: {err}")
                raise

    @transient_retry()
    def get_connection(self):
        """Get a connection from the pool."""
        self.initialize_pool()
        return self.connection_pool.get_connection()

    @contextmanager
    def cursor(self) -> Iterator[Any]:
        """
        Yield a dictionary cursor; commit on success, roll back on error.
        The connection is returned to the pool on exit.
        """
        connection = self.get_connection()
        cursor = None
        try:
            cursor = connection.cursor(dictionary=True, buffered=True)
            yield cursor
            connection.commit()
        except Exception as e:
            self.logger.error(f"Database error: {e}")
            connection.rollback()
            raise
        finally:
            if cursor:
                cursor.close()
            connection.close()

    def create_tables(self) -> None:
        """
        Create the required database tables if they do not exist.
        """
        statuses = ", ".join(f"'{status.value}'" for status in PhotoStatus)
        tables = {
            self.photos_table: (
                f"CREATE TABLE IF NOT EXISTS `{self.photos_table}` ("
                "  pk CHAR(36) NOT NULL PRIMARY KEY,"
                f"  status ENUM({statuses}) NOT NULL DEFAULT 'pending',"
                "  photo_name VARCHAR(500) NOT NULL,"
                "  full_key VARCHAR(700) NOT NULL,"
                "  thumbnail_key VARCHAR(700),"
                "  gallery_key VARCHAR(700),"
                "  camera_make VARCHAR(255),"
                "  camera_model VARCHAR(255),"
                "  original_created_at DATETIME NOT NULL,"
                "  f_number DOUBLE,"
                "  iso INT,"
                "  focal_length DOUBLE,"
                "  exposure_time VARCHAR(32),"
                "  UNIQUE KEY full_key_uq (full_key),"
                "  KEY photo_name_idx (photo_name),"
                "  KEY original_created_at_idx (original_created_at),"
                "  KEY status_idx (status)"
                ") ENGINE=InnoDB"
            ),
            self.tags_table: (
                f"CREATE TABLE IF NOT EXISTS `{self.tags_table}` ("
                "  pk CHAR(36) NOT NULL PRIMARY KEY,"
                "  name VARCHAR(50) NOT NULL,"
                "  description VARCHAR(256),"
                "  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,"
                "  UNIQUE KEY name_uq (name)"
                ") ENGINE=InnoDB"
            ),
            self.photo_tags_table: (
                f"CREATE TABLE IF NOT EXISTS `{self.photo_tags_table}` ("
                "  image_pk CHAR(36) NOT NULL,"
                "  tag_pk CHAR(36) NOT NULL,"
                "  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,"
                "  PRIMARY KEY (image_pk, tag_pk),"
                "  KEY photo_tags_tag_idx (tag_pk),"
                f"  FOREIGN KEY (image_pk) REFERENCES `{self.photos_table}` (pk) ON DELETE CASCADE,"
                f"  FOREIGN KEY (tag_pk) REFERENCES `{self.tags_table}` (pk) ON DELETE CASCADE"
                ") ENGINE=InnoDB"
            ),
        }

        with self.cursor() as cursor:
            for table_name, table_description in tables.items():
                self.logger.info(f"Creating table {table_name}...")
                cursor.execute(table_description)

    def create_pending_record(
        self,
        photo_name: str,
        full_key: str,
        created_at: Optional[datetime] = None
    ) -> str:
        """
        Insert a PENDING record, or reset the existing record for this key.

        Re-submitting a key clears derived keys and metadata and moves the
        record back to PENDING; its pk is kept.

        Returns:
            The record's pk
        """
        created_at = to_db_time(created_at or datetime.now(timezone.utc))
        resets = ", ".join(f"{column} = NULL" for column in ('thumbnail_key', 'gallery_key') + METADATA_COLUMNS)
        sql = (
            f"INSERT INTO `{self.photos_table}` "
            "(pk, status, photo_name, full_key, original_created_at) "
            "VALUES (%s, %s, %s, %s, %s) "
            "ON DUPLICATE KEY UPDATE "
            "status = VALUES(status), photo_name = VALUES(photo_name), "
            f"original_created_at = VALUES(original_created_at), {resets}"
        )
        with self.cursor() as cursor:
            cursor.execute(sql, (str(uuid.uuid4()), PhotoStatus.PENDING.value, photo_name, full_key, created_at))
            return self._pk_for(cursor, full_key)

    def mark_ready(
        self,
        full_key: str,
        photo_name: str,
        thumbnail_key: str,
        gallery_key: str,
        original_created_at: datetime,
        metadata_fields: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Set both rendition keys, metadata and READY in one statement.

        A record is created when none exists for the key yet.

        Returns:
            The record's pk
        """
        metadata_fields = metadata_fields or {}
        columns = (
            'pk', 'status', 'photo_name', 'full_key', 'thumbnail_key', 'gallery_key',
            'original_created_at',
        ) + METADATA_COLUMNS
        values = (
            str(uuid.uuid4()), PhotoStatus.READY.value, photo_name, full_key, thumbnail_key, gallery_key,
            to_db_time(original_created_at),
        ) + tuple(metadata_fields.get(column) for column in METADATA_COLUMNS)
        updates = ", ".join(
            f"{column} = VALUES({column})"
            for column in columns if column not in ('pk', 'photo_name', 'full_key')
        )
        sql = (
            f"INSERT INTO `{self.photos_table}` ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            f"ON DUPLICATE KEY UPDATE {updates}"
        )
        with self.cursor() as cursor:
            cursor.execute(sql, values)
            return self._pk_for(cursor, full_key)

    def mark_error(self, full_key: str) -> bool:
        """
        Set ERROR on the record for a key.

        Returns:
            True when a record existed
        """
        sql = f"UPDATE `{self.photos_table}` SET status = %s WHERE full_key = %s"
        with self.cursor() as cursor:
            cursor.execute(sql, (PhotoStatus.ERROR.value, full_key))
            return cursor.rowcount > 0

    def get_by_full_key(self, full_key: str) -> Optional[PhotoRecord]:
        sql = f"SELECT {', '.join(PHOTO_COLUMNS)} FROM `{self.photos_table}` WHERE full_key = %s"
        with self.cursor() as cursor:
            cursor.execute(sql, (full_key,))
            row = cursor.fetchone()
        return PhotoRecord.from_row(row) if row else None

    def get_by_pks(self, pks: Sequence[str]) -> List[PhotoRecord]:
        if not pks:
            return []
        placeholders = ', '.join(['%s'] * len(pks))
        sql = f"SELECT {', '.join(PHOTO_COLUMNS)} FROM `{self.photos_table}` WHERE pk IN ({placeholders})"
        with self.cursor() as cursor:
            cursor.execute(sql, tuple(pks))
            rows = cursor.fetchall()
        return [PhotoRecord.from_row(row) for row in rows]

    def list_ready(
        self,
        tag_pks: Optional[Sequence[str]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        order: str = 'desc',
        random: bool = False,
        limit: Optional[int] = None
    ) -> List[PhotoRecord]:
        """
        Query gallery-eligible records.

        Args:
            tag_pks: Keep photos carrying any of these tags
            date_from: Inclusive lower bound on capture time
            date_to: Inclusive upper bound on capture time
            order: 'asc' or 'desc' by capture time
            random: Random order instead of capture time
            limit: Maximum number of records

        Returns:
            Records with their tags loaded
        """
        order = order.lower()
        if order not in ORDERS:
            raise ValueError(f"order must be one of {ORDERS}, got {order!r}")

        columns = ', '.join(f"p.{column}" for column in PHOTO_COLUMNS)
        clauses = [
            "p.status = %s",
            "p.thumbnail_key IS NOT NULL",
            "p.gallery_key IS NOT NULL",
        ]
        params: List[Any] = [PhotoStatus.READY.value]

        if tag_pks:
            placeholders = ', '.join(['%s'] * len(tag_pks))
            clauses.append(
                f"p.pk IN (SELECT pt.image_pk FROM `{self.photo_tags_table}` pt "
                f"WHERE pt.tag_pk IN ({placeholders}))"
            )
            params.extend(tag_pks)
        if date_from is not None:
            clauses.append("p.original_created_at >= %s")
            params.append(to_db_time(date_from))
        if date_to is not None:
            clauses.append("p.original_created_at <= %s")
            params.append(to_db_time(date_to))

        sql = f"SELECT {columns} FROM `{self.photos_table}` p WHERE {' AND '.join(clauses)}"
        sql += " ORDER BY RAND()" if random else f" ORDER BY p.original_created_at {order.upper()}"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))

        with self.cursor() as cursor:
            cursor.execute(sql, tuple(params))
            records = [PhotoRecord.from_row(row) for row in cursor.fetchall()]
            self._attach_tags(cursor, records)
        return records

    def delete_records(self, pks: Sequence[str]) -> int:
        """
        Delete records by pk; tag links are removed by cascade.

        Returns:
            Number of records deleted
        """
        if not pks:
            return 0
        placeholders = ', '.join(['%s'] * len(pks))
        sql = f"DELETE FROM `{self.photos_table}` WHERE pk IN ({placeholders})"
        self.logger.debug(f"Deleting {len(pks)} photo records")
        with self.cursor() as cursor:
            cursor.execute(sql, tuple(pks))
            return cursor.rowcount

    def _pk_for(self, cursor, full_key: str) -> str:
        cursor.execute(f"SELECT pk FROM `{self.photos_table}` WHERE full_key = %s", (full_key,))
        row = cursor.fetchone()
        if not row:
            raise mysql.connector.errors.DatabaseError(f"No record for {full_key} after upsert")
        return row['pk']

    def _attach_tags(self, cursor, records: List[PhotoRecord]) -> None:
        if not records:
            return
        by_pk = {record.pk: record for record in records}
        placeholders = ', '.join(['%s'] * len(by_pk))
        cursor.execute(
            f"SELECT pt.image_pk, t.pk, t.name, t.description "
            f"FROM `{self.photo_tags_table}` pt JOIN `{self.tags_table}` t ON t.pk = pt.tag_pk "
            f"WHERE pt.image_pk IN ({placeholders}) ORDER BY t.name",
            tuple(by_pk),
        )
        for row in cursor.fetchall():
            by_pk[row['image_pk']].tags.append(
                Tag(pk=row['pk'], name=row['name'], description=row['description'])
            )
