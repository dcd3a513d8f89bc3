"""
Alpaca Broker
=============
BrokerFacade backed by an Alpaca paper account:
- Market orders with client order IDs
- Position, cash and portfolio queries
- Daily gain (equity - last_equity)

Alpaca accounts cannot be reset or funded through the API, so the reset
operations raise BrokerError; use the depot or paper broker for searches.
"""

import logging
from alpaca_trade_api import REST
from alpaca_trade_api.rest import APIError

from .broker import BrokerFacade, generate_order_id
from .exceptions import BrokerError
from .models import OrderResult, OrderSide
from .trader_config import TraderConfig

logger = logging.getLogger(__name__)


class AlpacaBroker(BrokerFacade):
    """
    Alpaca paper-trading account.

    Features:
    - Market orders (time in force: day)
    - Client order IDs for broker-side idempotency
    - Missing positions reported as flat
    """

    def __init__(self, config: TraderConfig, client: REST = None):
        """
        Initialize AlpacaBroker.

        Args:
            config: TraderConfig instance
            client: Optional existing Alpaca REST client
        """
        self.config = config

        # Initialize Alpaca client
        if client:
            self.client = client
        else:
            self.client = REST(
                key_id=config.alpaca_api_key,
                secret_key=config.alpaca_secret_key,
                base_url=config.alpaca_base_url
            )

        logger.info("[OK] AlpacaBroker initialized")

    def _submit(self, side: OrderSide, symbol: str, count: int, price_per_share: float) -> OrderResult:
        client_order_id = generate_order_id(symbol, side.value)

        try:
            logger.info(f"Submitting MARKET {side.value.upper()} {count} {symbol} (~${price_per_share:.2f})")
            order = self.client.submit_order(
                symbol=symbol,
                qty=count,
                side=side.value,
                type='market',
                time_in_force='day',
                client_order_id=client_order_id
            )
        except APIError as e:
            logger.error(f"API Error submitting order: {e}")
            return OrderResult(
                success=False,
                symbol=symbol,
                side=side.value,
                qty=count,
                price=price_per_share,
                status='rejected',
                error=str(e)
            )
        except Exception as e:
            logger.error(f"Error submitting order: {e}")
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
            order_id=order.id,
            status=order.status
        )

    def buy(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        return self._submit(OrderSide.BUY, symbol, count, price_per_share)

    def sell(self, symbol: str, count: int, price_per_share: float) -> OrderResult:
        return self._submit(OrderSide.SELL, symbol, count, price_per_share)

    def get_position(self, symbol: str) -> int:
        try:
            position = self.client.get_position(symbol)
        except APIError as e:
            if e.status_code == 404:
                return 0
            raise BrokerError(f"get_position({symbol}) failed: {e}") from e
        except Exception as e:
            raise BrokerError(f"get_position({symbol}) failed: {e}") from e
        return int(float(position.qty))

    def _account(self):
        try:
            return self.client.get_account()
        except Exception as e:
            raise BrokerError(f"get_account failed: {e}") from e

    def get_cash_balance(self) -> float:
        return float(self._account().cash)

    def get_portfolio_value(self) -> float:
        return float(self._account().portfolio_value)

    def get_gain(self) -> float:
        account = self._account()
        return float(account.equity) - float(account.last_equity)

    def reset_cash(self):
        raise BrokerError("Alpaca accounts cannot reset cash through the API")

    def reset_stock(self, symbol: str):
        raise BrokerError(f"Alpaca accounts cannot reset {symbol} through the API")

    def deposit(self, amount: float):
        raise BrokerError("Alpaca accounts cannot be funded through the API")
