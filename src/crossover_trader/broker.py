"""
Broker Facade
=============
Order execution and account state behind one interface:
- PaperBroker: in-memory account (tests, offline search)
- DepotBroker: remote paper-trading depot (JSON over HTTP)

Order calls never raise: failures come back as an unsuccessful
OrderResult and are logged. Queries and resets raise BrokerError.
"""

import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional
from urllib.parse import urljoin

import requests

from .exceptions import BrokerError
from .models import OrderResult, OrderSide

logger = logging.getLogger(__name__)


def generate_order_id(symbol: str, side: str) -> str:
    """Generate unique client order ID for idempotency"""
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    unique = uuid.uuid4().hex[:8]
    return f"XO_{symbol}_{side}_{timestamp}_{unique}"


class BrokerFacade(ABC):
    """Paper-trading account operations"""

    @abstractmethod
    def buy(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        """Buy count shares of symbol"""

    @abstractmethod
    def sell(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        """Sell count shares of symbol (may open or extend a short)"""

    @abstractmethod
    def get_position(self, symbol: str) -> int:
        """Signed share count held (negative = short)"""

    @abstractmethod
    def get_cash_balance(self) -> float:
        """Available cash"""

    @abstractmethod
    def get_portfolio_value(self) -> float:
        """Cash plus the value of every held position"""

    @abstractmethod
    def get_gain(self) -> float:
        """Performance since the last reset"""

    @abstractmethod
    def reset_cash(self):
        """Zero the cash balance"""

    @abstractmethod
    def reset_stock(self, symbol: str):
        """Zero the position in symbol"""

    @abstractmethod
    def deposit(self, amount: float):
        """Add cash to the account"""


class PaperBroker(BrokerFacade):
    """
    In-memory paper account.

    Positions are valued at the last traded price per symbol. Gain is the
    portfolio value minus everything deposited since the last cash reset.
    Sells beyond the held quantity open a short.
    """

    def __init__(self, starting_cash: float = 0.0):
        self.cash = 0.0
        self.deposited = 0.0
        self.positions: Dict[str, int] = {}
        self.prices: Dict[str, float] = {}
        self.order_count = 0
        if starting_cash > 0:
            self.deposit(starting_cash)

        logger.info("[OK] PaperBroker initialized")

    def _reject(self, symbol: str, side: OrderSide, count: int, price: float, error: str) -> OrderResult:
        logger.warning(f"{side.value.upper()} {count} {symbol} rejected: {error}")
        return OrderResult(
            success=False,
            symbol=symbol,
            side=side.value,
            qty=count,
            price=price,
            status='rejected',
            error=error
        )

    def _fill(self, symbol: str, side: OrderSide, count: int, price: float) -> OrderResult:
        self.order_count += 1
        return OrderResult(
            success=True,
            symbol=symbol,
            side=side.value,
            qty=count,
            price=price,
            order_id=generate_order_id(symbol, side.value),
            status='filled'
        )

    def buy(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        if count <= 0 or price_per_share <= 0:
            return self._reject(symbol, OrderSide.BUY, count, price_per_share, "count and price must be positive")

        cost = count * price_per_share
        if cost > self.cash:
            return self._reject(
                symbol, OrderSide.BUY, count, price_per_share,
                f"insufficient cash (need ${cost:,.2f}, have ${self.cash:,.2f})"
            )

        self.cash -= cost
        self.positions[symbol] = self.positions.get(symbol, 0) + count
        self.prices[symbol] = price_per_share
        return self._fill(symbol, OrderSide.BUY, count, price_per_share)

    def sell(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        if count <= 0 or price_per_share <= 0:
            return self._reject(symbol, OrderSide.SELL, count, price_per_share, "count and price must be positive")

        self.cash += count * price_per_share
        self.positions[symbol] = self.positions.get(symbol, 0) - count
        self.prices[symbol] = price_per_share
        return self._fill(symbol, OrderSide.SELL, count, price_per_share)

    def get_position(self, symbol: str) -> int:
        return self.positions.get(symbol, 0)

    def get_cash_balance(self) -> float:
        return self.cash

    def get_portfolio_value(self) -> float:
        positions_value = sum(
            count * self.prices.get(symbol, 0.0)
            for symbol, count in self.positions.items()
        )
        return self.cash + positions_value

    def get_gain(self) -> float:
        return self.get_portfolio_value() - self.deposited

    def reset_cash(self):
        self.cash = 0.0
        self.deposited = 0.0
        logger.info("Reset cash successful")

    def reset_stock(self, symbol: str):
        self.positions.pop(symbol, None)
        self.prices.pop(symbol, None)
        logger.info(f"Reset stock for {symbol} successful")

    def deposit(self, amount: float):
        if amount <= 0:
            raise BrokerError(f"deposit amount must be positive (got {amount})")
        self.cash += amount
        self.deposited += amount
        logger.info(f"Deposit of {amount:,.2f} successful")


class DepotBroker(BrokerFacade):
    """
    Client for the remote paper-trading depot.

    Endpoints (JSON bodies):
        POST /buy_shares     {symbol, count, price_per_share}
        POST /sell_shares    {symbol, count, price_per_share}
        POST /share_balance  {symbol}  -> {shares: [{symbol, count, price_per_share}]}
        GET  /state                    -> {cash, shares: [...]}
        GET  /gain                     -> {gain}
        POST /reset_cash     {}
        POST /reset_stock    {symbol}
        POST /deposit        {amount}
    """

    def __init__(self, base_url: str, timeout: float = 10, session: requests.Session = None):
        """
        Initialize DepotBroker.

        Args:
            base_url: Depot service root URL
            timeout: Seconds before a request is abandoned
            session: Optional existing requests session
        """
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

        logger.info(f"[OK] DepotBroker initialized ({base_url})")

    def _make_request(self, method: str, endpoint: str, data: Optional[dict] = None) -> dict:
        """
        Perform one request against the depot.

        Raises:
            BrokerError: on transport errors, non-200 responses or bad JSON
        """
        url = urljoin(self.base_url, endpoint)

        try:
            if method == 'GET':
                response = self.session.get(url, timeout=self.timeout)
            elif method == 'POST':
                response = self.session.post(url, json=data or {}, timeout=self.timeout)
            else:
                raise BrokerError(f"Unsupported method: {method}")
        except requests.RequestException as e:
            raise BrokerError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code != 200:
            raise BrokerError(f"{method} {endpoint} failed with HTTP {response.status_code}: {response.text}")

        try:
            body = response.json() if response.content else {}
        except ValueError as e:
            raise BrokerError(f"{method} {endpoint} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise BrokerError(f"{method} {endpoint} returned {type(body).__name__}, expected an object")
        return body

    def _submit(self, side: OrderSide, symbol: str, count: int, price_per_share: float) -> OrderResult:
        endpoint = '/buy_shares' if side == OrderSide.BUY else '/sell_shares'
        payload = {'symbol': symbol, 'count': int(count), 'price_per_share': float(price_per_share)}

        try:
            body = self._make_request('POST', endpoint, payload)
            order_id = body.get('order_id') or generate_order_id(symbol, side.value)
            status = str(body.get('status') or 'accepted')
        except BrokerError as e:
            logger.error(f"{side.value.capitalize()} RPC error: {e}")
            return OrderResult(
                success=False,
                symbol=symbol,
                side=side.value,
                qty=count,
                price=price_per_share,
                status='error',
                error=str(e)
            )

        return OrderResult(
            success=True,
            symbol=symbol,
            side=side.value,
            qty=count,
            price=price_per_share,
            order_id=order_id,
            status=status
        )

    def buy(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        return self._submit(OrderSide.BUY, symbol, count, price_per_share)

    def sell(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        return self._submit(OrderSide.SELL, symbol, count, price_per_share)

    def get_position(self, symbol: str) -> int:
        body = self._make_request('POST', '/share_balance', {'symbol': symbol})
        try:
            for share in body.get('shares', []):
                if share.get('symbol') == symbol:
                    return int(share.get('count', 0))
        except (TypeError, ValueError, AttributeError) as e:
            raise BrokerError(f"malformed share balance for {symbol}: {e}") from e
        return 0

    def _state(self) -> dict:
        return self._make_request('GET', '/state')

    def get_cash_balance(self) -> float:
        state = self._state()
        try:
            return float(state.get('cash', 0.0))
        except (TypeError, ValueError) as e:
            raise BrokerError(f"malformed cash in depot state: {e}") from e

    def get_portfolio_value(self) -> float:
        state = self._state()
        try:
            cash = float(state.get('cash', 0.0))
            positions_value = sum(
                int(share.get('count', 0)) * float(share.get('price_per_share', 0.0))
                for share in state.get('shares', [])
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise BrokerError(f"malformed depot state: {e}") from e
        return cash + positions_value

    def get_gain(self) -> float:
        body = self._make_request('GET', '/gain')
        if 'gain' not in body:
            raise BrokerError("gain missing from depot response")
        try:
            return float(body['gain'])
        except (TypeError, ValueError) as e:
            raise BrokerError(f"malformed gain in depot response: {e}") from e

    def reset_cash(self):
        self._make_request('POST', '/reset_cash')
        logger.info("Reset cash successful")

    def reset_stock(self, symbol: str):
        self._make_request('POST', '/reset_stock', {'symbol': symbol})
        logger.info(f"Reset stock for {symbol} successful")

    def deposit(self, amount: float):
        self._make_request('POST', '/deposit', {'amount': float(amount)})
        logger.info(f"Deposit of {amount:,.2f} successful")
