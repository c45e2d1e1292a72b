from .http import HttpSeriesFetcher

__all__ = ["HttpSeriesFetcher"]
