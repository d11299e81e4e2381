from coincast.data.coingecko_client import CircuitBreaker, CoinGeckoClient

__all__ = ["CoinGeckoClient", "CircuitBreaker"]
