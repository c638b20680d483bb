"""Rolling per-symbol price and last-digit history."""

from collections import deque
from typing import Deque, Optional


MAX_SAMPLES = 100

# Decimal places quoted by Deriv for each synthetic index.  Tick pushes
# carry ``pip_size`` as well; this table covers warm-up history and
# callers that only have a price.
SYMBOL_DECIMALS: dict[str, int] = {
    "R_10": 3,
    "R_25": 3,
    "R_50": 4,
    "R_75": 4,
    "R_100": 2,
    "1HZ10V": 2,
    "1HZ25V": 2,
    "1HZ50V": 2,
    "1HZ75V": 2,
    "1HZ100V": 2,
}

DEFAULT_DECIMALS = 5


def last_digit(price: float, decimals: int = DEFAULT_DECIMALS) -> int:
    """Return the last quoted decimal digit of *price*.

    >>> last_digit(1234.5678, 4)
    8
    """
    quoted = f"{price:.{decimals}f}"
    return int(quoted[-1])


class TickBuffer:
    """Bounded FIFO windows of prices and their digits, one pair per symbol.

    Args:
        max_samples: Window length; oldest samples are evicted first.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._max_samples = max_samples
        self._prices: dict[str, Deque[float]] = {}
        self._digits: dict[str, Deque[int]] = {}

    def add_sample(
        self,
        symbol: str,
        price: float,
        pip_size: Optional[int] = None,
    ) -> int:
        """Append *price* to the *symbol* window and return its digit."""
        if symbol not in self._prices:
            self._prices[symbol] = deque(maxlen=self._max_samples)
            self._digits[symbol] = deque(maxlen=self._max_samples)

        decimals = pip_size if pip_size is not None else SYMBOL_DECIMALS.get(
            symbol, DEFAULT_DECIMALS
        )
        digit = last_digit(price, decimals)
        self._prices[symbol].append(price)
        self._digits[symbol].append(digit)
        return digit

    def prices(self, symbol: str) -> list[float]:
        """Snapshot of the price window, oldest first."""
        return list(self._prices.get(symbol, ()))

    def digits(self, symbol: str) -> list[int]:
        """Snapshot of the digit window, oldest first."""
        return list(self._digits.get(symbol, ()))

    def size(self, symbol: str) -> int:
        return len(self._prices.get(symbol, ()))

    def symbols(self) -> list[str]:
        return list(self._prices.keys())

    def clear(self) -> None:
        """Drop every symbol's history."""
        self._prices.clear()
        self._digits.clear()
