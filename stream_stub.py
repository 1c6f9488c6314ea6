# stream_stub.py
# Async price emitter (simulated ticks) for the upstream price feeds.
# Usage example:
#   import asyncio
#   from stream_stub import price_stream
#   async def main():
#       async for tick in price_stream(symbols=("eth_usd",), interval_ms=50):
#           print(tick)
#   asyncio.run(main())

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, Mapping, Optional

from fixed_point import from_fixed, to_fixed
from price_sources import PriceFeed

log = logging.getLogger(__name__)


@dataclass
class Tick:
    symbol: str
    ts: int          # epoch seconds
    price: int       # fixed point


async def price_stream(symbols: Iterable[str] = ("eth_usd",),
                       base_prices: Optional[Mapping[str, float]] = None,
                       jitter: float = 0.08,
                       interval_ms: int = 50,
                       seed: Optional[int] = None) -> AsyncIterator[Tick]:
    """Yield simulated ticks for each symbol at ~interval_ms cadence.
    Prices follow a noisy random walk to emulate micro-movements.
    """
    rng = random.Random(seed)
    base_prices = base_prices or {}
    prices: Dict[str, float] = {s: float(base_prices.get(s, 100.0)) for s in symbols}
    while True:
        now = int(time.time())
        for s in prices:
            drift = rng.uniform(-0.02, 0.02)
            shock = rng.gauss(0.0, jitter)
            prices[s] = max(0.01, prices[s] * (1.0 + drift * 1e-3) + shock)
            yield Tick(symbol=s, ts=now, price=to_fixed(round(prices[s], 6)))
        await asyncio.sleep(max(0.0, interval_ms / 1000.0))


def base_prices_of(feeds: Mapping[str, PriceFeed]) -> Dict[str, float]:
    """Starting points for ``price_stream``: each feed's current price, where it has one."""
    base_prices = {}
    for name, feed in feeds.items():
        price, has_value = feed.peek()
        if has_value:
            base_prices[name] = from_fixed(price, feed.unit)
    return base_prices


if __name__ == "__main__":
    async def _demo():
        async for t in price_stream(symbols=("eth_usd", "btc_usd"), interval_ms=50):
            print(t)
    asyncio.run(_demo())
