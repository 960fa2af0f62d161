"""Simple script to view a market's indexed state and candles."""

from pathlib import Path
import sys
from datetime import datetime, timezone

sys.path.insert(0, str(Path(__file__).parent.parent))

from web3 import Web3

from perpdex_indexer.database.connection import database_exists
from perpdex_indexer.database.models import OHLC, Market, TraderTakerInfo
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.utils.config import DB_PATH, M5
from perpdex_indexer.utils.fixed_point import Q96


def view_market(market_address: str, resolution: int = M5, limit: int = 20, db_path: Path = DB_PATH) -> None:
    """
    View reserves, taker positions and recent candles for a market.

    Args:
        market_address: Market contract address, any letter case
        resolution: Candle resolution in seconds
        limit: Number of most recent candles to show
        db_path: SQLite database to read
    """
    if not Web3.is_address(market_address):
        print(f"Not a valid address: {market_address}")
        return
    # Stored ids are EIP-55 checksummed
    market_address = Web3.to_checksum_address(market_address)

    if not database_exists(db_path):
        print(f"Database not found: {db_path}")
        print("Run scripts/replay_events.py first.")
        return

    with EntityStore.open(db_path) as store:
        market = store.get(Market, market_address)
        print("=" * 100)
        print(f"Market: {market_address}")
        print("=" * 100)

        if market is None:
            print("Market not indexed.")
            return

        print(f"Base reserve:   {market.base_amount}")
        print(f"Quote reserve:  {market.quote_amount}")
        print(f"Liquidity:      {market.liquidity}")
        print(f"Base per share: {market.base_balance_per_share_x96 / Q96:.8f}")
        print(f"Mark price:     {market.mark_price_x96 / Q96:.8f}")
        print(f"Volume:         {market.trading_volume}\n")

        takers = [info for info in store.find(TraderTakerInfo, market=market_address) if info.base_balance_share]
        print(f"Open taker positions: {len(takers)}")
        for info in takers:
            print(f"  {info.trader:<45} base={info.base_balance:<20} entry={info.entry_price}")

        candles = sorted(store.find(OHLC, market=market_address, resolution=resolution), key=lambda c: c.time)[-limit:]
        print(f"\nLast {len(candles)} candles ({resolution}s):")
        if not candles:
            print("No candles found.")
            return

        print(f"{'Time':<20} {'Open':<14} {'High':<14} {'Low':<14} {'Close':<14} {'Quote Vol':<15}")
        print("-" * 100)
        for ohlc in candles:
            date_str = datetime.fromtimestamp(ohlc.time, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
            print(
                f"{date_str:<20} {ohlc.open / Q96:<14.6f} {ohlc.high / Q96:<14.6f} "
                f"{ohlc.low / Q96:<14.6f} {ohlc.close / Q96:<14.6f} {ohlc.quote_amount:<15}"
            )


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/view_market.py <market_address> [resolution] [limit]")
        print("Example: python scripts/view_market.py 0xAbC... 300 50")
        sys.exit(1)

    market_address = sys.argv[1]
    resolution = int(sys.argv[2]) if len(sys.argv) > 2 else M5
    limit = int(sys.argv[3]) if len(sys.argv) > 3 else 20

    view_market(market_address, resolution, limit)
