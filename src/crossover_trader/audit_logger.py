"""
Audit Logger
============
CSV audit trail for the crossover trader:
- Signals and the orders they produced
- Search episodes and their gains
- Errors with symbol/iteration context
"""

import csv
import logging
from pathlib import Path
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

import pandas as pd

from .models import IndicatorConfig, OrderResult

logger = logging.getLogger(__name__)

AUDIT_HEADERS = [
    'timestamp',
    'event_type',
    'symbol',
    'side',
    'qty',
    'price',
    'order_id',
    'status',
    'gain',
    'message'
]


class EventType(Enum):
    """Types of events to log"""
    SIGNAL_GENERATED = "SIGNAL_GENERATED"
    ORDER_SUBMITTED = "ORDER_SUBMITTED"
    ORDER_REJECTED = "ORDER_REJECTED"
    EPISODE_COMPLETE = "EPISODE_COMPLETE"
    EPISODE_SKIPPED = "EPISODE_SKIPPED"
    ERROR = "ERROR"
    INFO = "INFO"


class AuditLogger:
    """
    Appends audit events to a CSV file and reads them back with pandas.
    """

    def __init__(self, audit_csv: Union[str, Path]):
        """
        Initialize AuditLogger.

        Args:
            audit_csv: Path of the CSV trail (created with headers if missing)
        """
        self.audit_csv = Path(audit_csv)
        self.audit_csv.parent.mkdir(parents=True, exist_ok=True)

        if not self.audit_csv.exists():
            with open(self.audit_csv, 'w', newline='') as f:
                csv.writer(f).writerow(AUDIT_HEADERS)

        logger.info(f"[OK] AuditLogger initialized (csv: {self.audit_csv})")

    def log_event(
        self,
        event_type: EventType,
        symbol: str = '',
        side: str = '',
        qty: float = 0,
        price: float = 0,
        order_id: str = '',
        status: str = '',
        gain: float = 0,
        message: str = ''
    ):
        """Append one row to the audit trail"""
        row = [
            datetime.now().isoformat(),
            event_type.value,
            symbol,
            side,
            qty,
            price,
            order_id,
            status,
            gain,
            message
        ]

        try:
            with open(self.audit_csv, 'a', newline='') as f:
                csv.writer(f).writerow(row)
            logger.debug(f"Logged {event_type.value}: {symbol} {message}")
        except OSError as e:
            logger.error(f"Error writing to audit log: {e}")

    def log_signal(self, symbol: str, signal: str, price: float, config: IndicatorConfig):
        self.log_event(
            event_type=EventType.SIGNAL_GENERATED,
            symbol=symbol,
            price=price,
            message=f"Signal: {signal} | {config}"
        )

    def log_order(self, result: OrderResult, reason: str = ''):
        """Log a broker acknowledgment"""
        event_type = EventType.ORDER_SUBMITTED if result.success else EventType.ORDER_REJECTED
        self.log_event(
            event_type=event_type,
            symbol=result.symbol,
            side=result.side,
            qty=result.qty,
            price=result.price,
            order_id=result.order_id or '',
            status=result.status,
            message=result.error or reason
        )

    def log_episode(self, iteration: int, symbol: str, config: IndicatorConfig, gain: Optional[float]):
        """Log the end of a search episode (gain None = skipped)"""
        if gain is None:
            self.log_event(
                event_type=EventType.EPISODE_SKIPPED,
                symbol=symbol,
                message=f"Episode {iteration} | {config} | gain unavailable"
            )
        else:
            self.log_event(
                event_type=EventType.EPISODE_COMPLETE,
                symbol=symbol,
                gain=gain,
                message=f"Episode {iteration} | {config}"
            )

    def log_error(self, message: str, symbol: str = ''):
        self.log_event(event_type=EventType.ERROR, symbol=symbol, message=message)

    def log_info(self, message: str, symbol: str = ''):
        self.log_event(event_type=EventType.INFO, symbol=symbol, message=message)

    # =========================================================================
    # QUERY INTERFACE
    # =========================================================================

    def get_audit_trail(self, symbol: str = None, event_type: EventType = None) -> pd.DataFrame:
        """
        Query the audit trail.

        Args:
            symbol: Filter by symbol
            event_type: Filter by event type

        Returns:
            DataFrame with matching events
        """
        df = pd.read_csv(self.audit_csv, keep_default_na=False)

        if symbol:
            df = df[df['symbol'] == symbol]
        if event_type:
            df = df[df['event_type'] == event_type.value]

        return df.reset_index(drop=True)

    def get_order_summary(self) -> Dict[str, Any]:
        """
        Order counts from the audit trail.

        Returns:
            Dict with submitted/rejected counts and shares per side
        """
        df = self.get_audit_trail()
        submitted = df[df['event_type'] == EventType.ORDER_SUBMITTED.value]
        rejected = df[df['event_type'] == EventType.ORDER_REJECTED.value]

        qty = pd.to_numeric(submitted['qty'], errors='coerce').fillna(0)

        return {
            'orders_submitted': len(submitted),
            'orders_rejected': len(rejected),
            'shares_bought': int(qty[submitted['side'] == 'buy'].sum()),
            'shares_sold': int(qty[submitted['side'] == 'sell'].sum()),
        }
