"""
Results Store
=============
Persistence for configuration-search runs (SQLite).

One row per completed episode: the moving-average pair, the symbol it was
evaluated on, the gain and a UTC timestamp.
"""

import sqlite3
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .exceptions import PersistenceFailure
from .models import IndicatorConfig, RunResult

logger = logging.getLogger(__name__)


class ResultsStore(ABC):
    """Storage for RunResult records"""

    @abstractmethod
    def create(self, result: RunResult) -> RunResult:
        """Store result and return it with its assigned id"""

    @abstractmethod
    def list(self, symbol: Optional[str] = None) -> List[RunResult]:
        """All stored results, best gain first"""

    @abstractmethod
    def delete(self, result_id: int) -> bool:
        """Delete one result; False if it did not exist"""


class SqliteResultsStore(ResultsStore):
    """
    SQLite-backed results store.

    Every sqlite3 error is re-raised as PersistenceFailure.
    """

    def __init__(self, db_path: str = 'data/results.db'):
        """
        Initialize the results store

        Args:
            db_path (str): Path to SQLite database (created if missing)
        """
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()
        logger.info(f"[OK] SqliteResultsStore initialized ({db_path})")

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot open {self.db_path}: {e}") from e

    def init_schema(self):
        """Create the run_results table if it doesn't exist"""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS run_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    short_period INTEGER NOT NULL,
                    long_period INTEGER NOT NULL,
                    symbol TEXT NOT NULL,
                    gain REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_symbol_gain
                ON run_results(symbol, gain)
            ''')
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"schema init failed: {e}") from e
        finally:
            conn.close()

    def delete_schema(self):
        """Drop the run_results table and everything in it"""
        conn = self._connect()
        try:
            conn.execute('DROP TABLE IF EXISTS run_results')
            conn.commit()
            logger.info("run_results table dropped")
        except sqlite3.Error as e:
            raise PersistenceFailure(f"schema delete failed: {e}") from e
        finally:
            conn.close()

    def create(self, result: RunResult) -> RunResult:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO run_results (short_period, long_period, symbol, gain, timestamp)
                VALUES (?, ?, ?, ?, ?)
            ''', (
                result.config.short_period,
                result.config.long_period,
                result.symbol,
                float(result.gain),
                result.timestamp.isoformat()
            ))
            conn.commit()
            result_id = cursor.lastrowid
        except sqlite3.Error as e:
            raise PersistenceFailure(f"insert failed: {e}") from e
        finally:
            conn.close()

        logger.debug(f"Stored run #{result_id}: {result.config} on {result.symbol} gain {result.gain:,.2f}")
        return RunResult(
            config=result.config,
            symbol=result.symbol,
            gain=result.gain,
            timestamp=result.timestamp,
            id=result_id
        )

    def list(self, symbol: Optional[str] = None) -> List[RunResult]:
        df = self.to_dataframe(symbol)
        return [RunResult.from_dict(dict(row, id=int(row['id']))) for row in df.to_dict('records')]

    def to_dataframe(self, symbol: Optional[str] = None) -> pd.DataFrame:
        """Stored results as a DataFrame, best gain first"""
        query = '''
            SELECT id, short_period, long_period, symbol, gain, timestamp
            FROM run_results
        '''
        params = ()
        if symbol:
            query += ' WHERE symbol = ?'
            params = (symbol,)
        query += ' ORDER BY gain DESC, id ASC'

        conn = self._connect()
        try:
            return pd.read_sql_query(query, conn, params=params)
        except Exception as e:
            raise PersistenceFailure(f"query failed: {e}") from e
        finally:
            conn.close()

    def delete(self, result_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM run_results WHERE id = ?', (int(result_id),))
            conn.commit()
            deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise PersistenceFailure(f"delete failed: {e}") from e
        finally:
            conn.close()
        return deleted

    def best_configs(self, symbol: Optional[str] = None, limit: int = 10) -> List[IndicatorConfig]:
        return [r.config for r in self.list(symbol)[:limit]]
