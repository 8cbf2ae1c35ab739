"""Candidate watch-lists and a bounds-checked cursor over them."""

from typing import Optional, Sequence

# Liquid large caps scanned for swing and day-trade candidates.
PRIMARY_LIST: tuple[str, ...] = (
    "AAPL", "MSFT", "AMZN", "GOOGL", "META", "NVDA", "TSLA", "AMD",
    "NFLX", "ADBE", "CRM", "INTC", "QCOM", "AVGO", "CSCO", "ORCL",
    "JPM", "BAC", "GS", "V", "MA", "DIS", "NKE", "SBUX",
    "HD", "COST", "WMT", "PYPL", "SHOP", "UBER",
)

# Inverse and volatility ETFs traded as bearish setups.
BEAR_LIST: tuple[str, ...] = (
    "SQQQ", "SPXU", "SDOW", "TZA", "SOXS", "FAZ", "LABD", "UVXY",
    "QID", "SDS", "DOG", "PSQ", "SH", "TECS", "YANG",
)


class WatchlistCursor:
    """Hands out symbols from a watch-list one at a time.

    Args:
        symbols: The list to walk.
        wrap: Restart from the top after the last symbol. When ``False``
              the cursor returns ``None`` once exhausted.
    """

    def __init__(self, symbols: Sequence[str], wrap: bool = True) -> None:
        self._symbols = tuple(symbols)
        self._wrap = wrap
        self._index = 0

    def next(self) -> Optional[str]:
        if not self._symbols:
            return None
        if self._index >= len(self._symbols):
            if not self._wrap:
                return None
            self._index = 0
        symbol = self._symbols[self._index]
        self._index += 1
        return symbol
