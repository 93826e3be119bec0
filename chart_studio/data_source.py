"""
Market data sources for the chart engine.

Provides an abstract async interface for the backend collaborator plus two
implementations: an HTTP client for the backend chart commands and a CSV
reader for offline charts.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Config
from .exceptions import FetchError
from .models import PricePoint, TemporalEventMarker

logger = logging.getLogger(__name__)


class MarketDataSource(ABC):
    """Abstract base class for price history and event providers."""

    @abstractmethod
    async def fetch_price_history(self, ticker: str, from_time: int, to_time: int,
                                  interval: str) -> List[PricePoint]:
        """Ordered bars for ticker in [from_time, to_time]. Raises FetchError on failure."""
        pass

    @abstractmethod
    async def fetch_events(self, ticker: str, from_time: int, to_time: int) -> List[TemporalEventMarker]:
        """Ordered temporal events for ticker. Raises FetchError on failure."""
        pass


class HttpMarketDataSource(MarketDataSource):
    """
    Client for the backend chart commands.

    Each command is a JSON POST to `<base_url>/api/<command>`. Requests are
    blocking, so they run in a worker thread to keep the event loop free.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        fetch_config = Config.get_fetch_config()
        self.base_url = (base_url or fetch_config['base_url']).rstrip('/')
        self.timeout = timeout or fetch_config['timeout_seconds']

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=None,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

        logger.info(f"HTTP market data source initialized with URL: {self.base_url}")

    def _invoke(self, command: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/api/{command}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"{command} request failed", {'ticker': payload.get('ticker'), 'error': e}) from e
        except json.JSONDecodeError as e:
            raise FetchError(f"{command} returned invalid JSON", {'ticker': payload.get('ticker')}) from e

    async def fetch_price_history(self, ticker: str, from_time: int, to_time: int,
                                  interval: str) -> List[PricePoint]:
        payload = {'ticker': ticker, 'fromTs': from_time, 'toTs': to_time, 'interval': interval}
        records = await asyncio.to_thread(self._invoke, 'get_chart_data', payload)
        if not isinstance(records, list):
            raise FetchError("get_chart_data returned unexpected payload", {'ticker': ticker})
        points = [PricePoint.from_dict(record) for record in records]
        logger.info(f"Fetched {len(points)} bars for {ticker} ({interval})")
        return points

    async def fetch_events(self, ticker: str, from_time: int, to_time: int) -> List[TemporalEventMarker]:
        payload = {'ticker': ticker, 'fromTs': from_time, 'toTs': to_time}
        records = await asyncio.to_thread(self._invoke, 'get_events_for_chart', payload)
        if not isinstance(records, list):
            raise FetchError("get_events_for_chart returned unexpected payload", {'ticker': ticker})
        return [TemporalEventMarker.from_dict(record) for record in records]


class CsvMarketDataSource(MarketDataSource):
    """
    Reads `<TICKER>.csv` bars and optional `<TICKER>_events.csv` events from a
    directory.

    Bar files need a `time` column (epoch seconds or any date string pandas
    can parse) plus close/high/low, and optionally open/volume. The `interval`
    argument is ignored; files are used at their own resolution.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        logger.info(f"CSV market data source initialized with directory: {self.data_dir}")

    def _path(self, ticker: str, suffix: str = '') -> Path:
        return self.data_dir / f"{ticker.upper()}{suffix}.csv"

    @staticmethod
    def _epoch_seconds(column: pd.Series) -> pd.Series:
        if pd.api.types.is_numeric_dtype(column):
            return column.astype('int64')
        stamps = pd.to_datetime(column, utc=True)
        return (stamps - pd.Timestamp('1970-01-01', tz='UTC')) // pd.Timedelta(seconds=1)

    def _read(self, path: Path) -> pd.DataFrame:
        try:
            frame = pd.read_csv(path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise FetchError(f"Cannot read {path.name}", {'error': e}) from e
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        return frame

    async def fetch_price_history(self, ticker: str, from_time: int, to_time: int,
                                  interval: str) -> List[PricePoint]:
        path = self._path(ticker)
        if not path.exists():
            raise FetchError(f"No price file for {ticker}", {'path': str(path)})

        frame = self._read(path)
        missing = {'time', 'close', 'high', 'low'} - set(frame.columns)
        if missing:
            raise FetchError(f"Missing columns in {path.name}: {sorted(missing)}")

        frame['time'] = self._epoch_seconds(frame['time'])
        frame = frame[(frame['time'] >= from_time) & (frame['time'] <= to_time)].sort_values('time')
        records = frame.to_dict('records')
        return [PricePoint.from_dict(record) for record in records]

    async def fetch_events(self, ticker: str, from_time: int, to_time: int) -> List[TemporalEventMarker]:
        path = self._path(ticker, '_events')
        if not path.exists():
            return []

        frame = self._read(path)
        frame['timestamp'] = self._epoch_seconds(frame['timestamp'])
        frame = frame[(frame['timestamp'] >= from_time) & (frame['timestamp'] <= to_time)].sort_values('timestamp')
        return [TemporalEventMarker.from_dict(record) for record in frame.to_dict('records')]
