"""
SQLite Implementation of the Killmail Store.

Uses WAL mode so readers (status queries, analytics) never block the writer.
All writes go through persist(), which runs one BEGIN IMMEDIATE transaction
per killmail under an in-process lock.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from ...core.errors import DuplicateWriteError, StoreIntegrityError
from ...core.logging import get_logger
from .migrations import MigrationRunner
from .protocol import KillmailHeader, Participant, PersistOutcome, StoreStats

logger = get_logger(__name__)

FINGERPRINT_SIZE = 20


class SQLiteKillmailStore:
    """
    SQLite implementation of KillmailStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON

    Writers are serialized twice: an asyncio.Lock orders the workers of
    this process, and BEGIN IMMEDIATE takes SQLite's reserved lock so a
    second process blocks (up to busy_timeout) instead of interleaving.
    The UNIQUE constraint on hashes.hash backs both.

    Reads go through a second, read-only connection so they only ever see
    committed rows, never the half-written unit of an open persist().
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        read_only: bool = False,
    ):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to settings.killmail_db_path.
            read_only: Open in read-only mode (for status queries).
        """
        if db_path is None:
            from ...core.config import get_settings

            db_path = get_settings().killmail_db_path

        self.db_path = Path(db_path)
        self.read_only = read_only
        self._db: aiosqlite.Connection | None = None
        self._reader: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Initialize database, running migrations if needed.

        Must be called before any other operations.
        """
        if self.read_only:
            self._db = await self._connect_read_only()
            self._reader = self._db
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path)

            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA busy_timeout=5000")
            await self._db.execute("PRAGMA synchronous=NORMAL")
            await self._db.execute("PRAGMA foreign_keys=ON")

            runner = MigrationRunner(self._db)
            await runner.run_migrations()

            self._reader = await self._connect_read_only()

        self._db.row_factory = aiosqlite.Row

        logger.info(
            "Killmail store initialized: %s (read_only=%s)",
            self.db_path,
            self.read_only,
        )

    async def _connect_read_only(self) -> aiosqlite.Connection:
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        conn = await aiosqlite.connect(uri, uri=True)
        await conn.execute("PRAGMA busy_timeout=5000")
        await conn.execute("PRAGMA query_only=ON")
        conn.row_factory = aiosqlite.Row
        return conn

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._reader is not None and self._reader is not self._db:
            await self._reader.close()
        self._reader = None
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Killmail store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the write connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    @property
    def reader(self) -> aiosqlite.Connection:
        """Get the read connection, raising if not initialized."""
        if self._reader is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._reader

    async def __aenter__(self) -> SQLiteKillmailStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Write Path
    # -------------------------------------------------------------------------

    async def persist(
        self,
        fingerprint: bytes,
        header: KillmailHeader,
        participants: list[Participant] | tuple[Participant, ...],
    ) -> PersistOutcome:
        """
        Write header, participants and dedup record as one unit of work.

        Returns:
            INSERTED when all rows were written, DUPLICATE when the
            fingerprint or the killmail id was already stored (nothing
            written in that case).

        Raises:
            StoreIntegrityError: Malformed input or any database failure
                other than the expected duplicates. The transaction is
                rolled back.
        """
        self._check_unit(fingerprint, header, participants)

        async with self._write_lock:
            try:
                await self.db.execute("BEGIN IMMEDIATE")
                await self._write_unit(fingerprint, header, participants)
                await self.db.commit()
            except DuplicateWriteError as e:
                await self.db.rollback()
                logger.debug("Duplicate killmail %d: %s", header.killmail_id, e.message)
                return PersistOutcome.DUPLICATE
            except aiosqlite.Error as e:
                await self.db.rollback()
                raise StoreIntegrityError(
                    f"persist failed: {e}",
                    kill_id=header.killmail_id,
                    original_error=e,
                ) from e
            except BaseException:
                # Cancellation mid-transaction must not leave it open.
                # A rollback after a completed commit is a no-op.
                await asyncio.shield(self.db.rollback())
                raise

        logger.debug(
            "Persisted killmail %d with %d participants",
            header.killmail_id,
            len(participants),
        )
        return PersistOutcome.INSERTED

    @staticmethod
    def _check_unit(
        fingerprint: bytes,
        header: KillmailHeader,
        participants: list[Participant] | tuple[Participant, ...],
    ) -> None:
        if not isinstance(fingerprint, (bytes, bytearray)) or len(fingerprint) != FINGERPRINT_SIZE:
            raise StoreIntegrityError(
                f"fingerprint must be {FINGERPRINT_SIZE} bytes",
                kill_id=header.killmail_id,
            )
        if any(p.killmail_id != header.killmail_id for p in participants):
            raise StoreIntegrityError(
                "participant killmail_id does not match header",
                kill_id=header.killmail_id,
            )
        victims = sum(1 for p in participants if p.is_victim)
        if victims != 1:
            raise StoreIntegrityError(
                f"expected exactly one victim, got {victims}",
                kill_id=header.killmail_id,
            )

    async def _write_unit(
        self,
        fingerprint: bytes,
        header: KillmailHeader,
        participants: list[Participant] | tuple[Participant, ...],
    ) -> None:
        """Steps of persist(); runs inside the open transaction."""
        async with self.db.execute(
            "SELECT 1 FROM hashes WHERE hash = ?",
            (bytes(fingerprint),),
        ) as cursor:
            seen = await cursor.fetchone() is not None
        if seen:
            raise DuplicateWriteError("fingerprint already recorded", kill_id=header.killmail_id)

        async with self.db.execute(
            "SELECT 1 FROM killmails WHERE killmail_id = ?",
            (header.killmail_id,),
        ) as cursor:
            stored = await cursor.fetchone() is not None
        if stored:
            raise DuplicateWriteError("killmail id already stored", kill_id=header.killmail_id)

        await self.db.execute(
            """
            INSERT INTO killmails (killmail_id, killmail_time, solar_system_id)
            VALUES (?, ?, ?)
            """,
            (header.killmail_id, header.killmail_time, header.solar_system_id),
        )

        await self.db.executemany(
            """
            INSERT INTO participants (
                killmail_id, character_id, corporation_id, alliance_id,
                ship_type_id, damage, is_victim
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    p.killmail_id,
                    p.character_id,
                    p.corporation_id,
                    p.alliance_id,
                    p.ship_type_id,
                    p.damage,
                    1 if p.is_victim else 0,
                )
                for p in participants
            ],
        )

        try:
            await self.db.execute(
                "INSERT INTO hashes (hash) VALUES (?)",
                (bytes(fingerprint),),
            )
        except aiosqlite.IntegrityError as e:
            # Only reachable if another connection ignored the reserved lock
            raise DuplicateWriteError(
                "fingerprint recorded concurrently",
                kill_id=header.killmail_id,
                original_error=e,
            ) from e

    # -------------------------------------------------------------------------
    # Read Path
    # -------------------------------------------------------------------------

    async def fingerprint_exists(self, fingerprint: bytes) -> bool:
        """Check whether a fingerprint has been committed."""
        async with self.reader.execute(
            "SELECT 1 FROM hashes WHERE hash = ?",
            (bytes(fingerprint),),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def get_killmail(self, killmail_id: int) -> KillmailHeader | None:
        """Get a killmail header by id."""
        async with self.reader.execute(
            """
            SELECT killmail_id, killmail_time, solar_system_id
            FROM killmails
            WHERE killmail_id = ?
            """,
            (killmail_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return KillmailHeader(
            killmail_id=row["killmail_id"],
            killmail_time=row["killmail_time"],
            solar_system_id=row["solar_system_id"],
        )

    async def get_participants(self, killmail_id: int) -> list[Participant]:
        """Get participants, victim first, then attackers in insertion order."""
        async with self.reader.execute(
            """
            SELECT killmail_id, character_id, corporation_id, alliance_id,
                   ship_type_id, damage, is_victim
            FROM participants
            WHERE killmail_id = ?
            ORDER BY is_victim DESC, rowid
            """,
            (killmail_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_participant(row) for row in rows]

    @staticmethod
    def _row_to_participant(row: aiosqlite.Row) -> Participant:
        return Participant(
            killmail_id=row["killmail_id"],
            character_id=row["character_id"],
            corporation_id=row["corporation_id"],
            alliance_id=row["alliance_id"],
            ship_type_id=row["ship_type_id"],
            damage=row["damage"],
            is_victim=bool(row["is_victim"]),
        )

    async def _scalar_row(self, sql: str) -> aiosqlite.Row:
        async with self.reader.execute(sql) as cursor:
            return await cursor.fetchone()

    async def get_stats(self) -> StoreStats:
        """Get storage statistics for observability."""
        row = await self._scalar_row(
            "SELECT COUNT(*), MIN(killmail_time), MAX(killmail_time) FROM killmails"
        )
        total_killmails, oldest_time, newest_time = row[0], row[1], row[2]

        total_participants = (await self._scalar_row("SELECT COUNT(*) FROM participants"))[0]
        total_hashes = (await self._scalar_row("SELECT COUNT(*) FROM hashes"))[0]
        schema_version = (
            await self._scalar_row("SELECT MAX(version) FROM schema_migrations")
        )[0] or 0

        try:
            db_size = self.db_path.stat().st_size
        except OSError:
            db_size = 0

        return StoreStats(
            total_killmails=total_killmails,
            total_participants=total_participants,
            total_hashes=total_hashes,
            oldest_killmail_time=oldest_time,
            newest_killmail_time=newest_time,
            schema_version=schema_version,
            database_size_bytes=db_size,
        )
