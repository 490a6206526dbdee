"""
Bar, wallet, position, order and fill models.

These dataclasses represent the objects passed between the simulation
loop, the ledger, the order book and the execution engine.  Keeping them
in a separate module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import pandas as pd


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "PositionSide":
        return PositionSide.SHORT if self is PositionSide.LONG else PositionSide.LONG

    @property
    def closing_side(self) -> OrderSide:
        """Order side that reduces a position on this side."""
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class OrderKind(str, Enum):
    LIMIT = "LIMIT"
    TRAILING_STOP = "TRAILING_STOP"


class TrailingState(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class Bar:
    """One OHLCV candle.  Produced by the data source, never modified."""
    symbol: str
    interval: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    open_time: pd.Timestamp
    close_time: pd.Timestamp


@dataclass
class Position:
    """The single position held on a pair.

    `size` is signed: positive for long, negative for short, zero when
    flat.  `position_side` is only meaningful while `size != 0`.
    """
    pair: str
    leverage: int = 1
    size: float = 0.0
    margin: float = 0.0
    entry_price: float = 0.0
    position_side: PositionSide = PositionSide.LONG
    unrealized_profit: float = 0.0

    @property
    def is_flat(self) -> bool:
        return self.size == 0

    def reset(self) -> None:
        """Return to the flat state."""
        self.size = 0.0
        self.margin = 0.0
        self.entry_price = 0.0
        self.unrealized_profit = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pair': self.pair,
            'leverage': self.leverage,
            'size': self.size,
            'margin': self.margin,
            'entry_price': self.entry_price,
            'position_side': self.position_side.value,
            'unrealized_profit': self.unrealized_profit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            pair=data['pair'],
            leverage=int(data['leverage']),
            size=float(data['size']),
            margin=float(data['margin']),
            entry_price=float(data['entry_price']),
            position_side=PositionSide(data['position_side']),
            unrealized_profit=float(data['unrealized_profit']),
        )


@dataclass
class Wallet:
    """Futures wallet balances for one pair, with its position."""
    available_balance: float
    total_wallet_balance: float
    position: Position
    total_unrealized_profit: float = 0.0

    @classmethod
    def open(cls, pair: str, capital: float, leverage: int) -> "Wallet":
        return cls(
            available_balance=capital,
            total_wallet_balance=capital,
            position=Position(pair=pair, leverage=leverage),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'available_balance': self.available_balance,
            'total_wallet_balance': self.total_wallet_balance,
            'total_unrealized_profit': self.total_unrealized_profit,
            'position': self.position.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Wallet":
        return cls(
            available_balance=float(data['available_balance']),
            total_wallet_balance=float(data['total_wallet_balance']),
            total_unrealized_profit=float(data['total_unrealized_profit']),
            position=Position.from_dict(data['position']),
        )


@dataclass
class PendingOrder:
    """A resting exit order attached to the open position.

    `position_side` is the side of the position the order closes; the
    order itself trades on the opposite side.  For trailing stops `price`
    is the activation price.
    """
    id: int
    pair: str
    kind: OrderKind
    position_side: PositionSide
    price: float
    quantity: float
    callback_rate: Optional[float] = None
    state: Optional[TrailingState] = None

    @property
    def side(self) -> OrderSide:
        return self.position_side.closing_side

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'pair': self.pair,
            'kind': self.kind.value,
            'position_side': self.position_side.value,
            'price': self.price,
            'quantity': self.quantity,
            'callback_rate': self.callback_rate,
            'state': self.state.value if self.state else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingOrder":
        return cls(
            id=int(data['id']),
            pair=data['pair'],
            kind=OrderKind(data['kind']),
            position_side=PositionSide(data['position_side']),
            price=float(data['price']),
            quantity=float(data['quantity']),
            callback_rate=data.get('callback_rate'),
            state=TrailingState(data['state']) if data.get('state') else None,
        )


@dataclass
class Fill:
    """An executed order and its effect on the wallet."""
    time: Optional[pd.Timestamp]
    pair: str
    side: OrderSide
    price: float
    quantity: float
    fee: float
    pnl: float
    reason: str  # market, limit, trailing_stop, liquidation, timeout, close

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time': self.time.isoformat() if self.time is not None else None,
            'pair': self.pair,
            'side': self.side.value,
            'price': self.price,
            'quantity': self.quantity,
            'fee': self.fee,
            'pnl': self.pnl,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fill":
        return cls(
            time=pd.Timestamp(data['time']) if data.get('time') else None,
            pair=data['pair'],
            side=OrderSide(data['side']),
            price=float(data['price']),
            quantity=float(data['quantity']),
            fee=float(data['fee']),
            pnl=float(data['pnl']),
            reason=data['reason'],
        )


@dataclass
class Rejection:
    """A fill request that left the ledger untouched."""
    time: Optional[pd.Timestamp]
    pair: str
    side: OrderSide
    price: float
    quantity: float
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)
