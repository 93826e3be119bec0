#!/usr/bin/env python3
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from chart_studio.chart import ChartCompositor, MplfinanceSurface
from chart_studio.chart_config import ChartConfig, LightChartTheme
from chart_studio.config import Config
from chart_studio.controller import ChartController, TIMEFRAMES
from chart_studio.data_source import CsvMarketDataSource, HttpMarketDataSource
from chart_studio.exceptions import ChartEngineError
from chart_studio.models import IndicatorConfig


def build_controller(args) -> ChartController:
    """Wire data source, surface factory and compositor from CLI arguments."""
    chart_config = LightChartTheme if args.theme == 'light' else ChartConfig

    if args.csv_dir:
        source = CsvMarketDataSource(args.csv_dir)
    else:
        source = HttpMarketDataSource(base_url=args.backend_url)

    compositor = ChartCompositor(lambda title: MplfinanceSurface(chart_config, title=title), chart_config)
    return ChartController(source, compositor, timeout=args.timeout)


async def render_chart(args) -> int:
    controller = build_controller(args)
    indicators = [IndicatorConfig.parse(option) for option in args.indicator]

    try:
        result = await controller.load(
            args.ticker,
            args.timeframe,
            indicators=indicators,
            comparison_tickers=args.compare,
            show_events=not args.no_events,
        )
        for notice in result.notices:
            print(f"⚠️  {notice.message}")

        image = controller.export_image()
        output = Path(args.output)
        output.write_bytes(image)
        print(f"✅ Chart saved to {output} ({result.bars} bars, {len(image)} bytes)")
        return 0
    except ChartEngineError as e:
        print(f"❌ {e}")
        return 1
    finally:
        controller.close()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    Config.load_from_env()

    parser = argparse.ArgumentParser(
        description='Render a ticker chart with indicator and comparison overlays',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Daily AAPL chart with SMA(20), RSI(14) and a MSFT comparison from the backend
  python main.py --ticker AAPL --indicator sma:20 --indicator rsi --compare MSFT

  # Offline chart from CSV files (AAPL.csv, AAPL_events.csv)
  python main.py --ticker AAPL --csv-dir data/ --indicator bollinger --indicator macd
        """
    )

    parser.add_argument('--ticker', default='AAPL',
                        help='Ticker symbol (default: AAPL)')
    parser.add_argument('--timeframe', default='1d', choices=list(TIMEFRAMES),
                        help='Chart timeframe (default: 1d)')
    parser.add_argument('--indicator', action='append', default=[],
                        help='Indicator overlay as type[:period], repeatable '
                             '(sma, ema, rsi, macd, bollinger)')
    parser.add_argument('--compare', action='append', default=[],
                        help='Comparison ticker, repeatable')
    parser.add_argument('--no-events', action='store_true', default=False,
                        help='Do not load event markers')

    # Data source
    parser.add_argument('--csv-dir', default=None,
                        help='Read bars from <TICKER>.csv files in this directory instead of the backend')
    parser.add_argument('--backend-url', default=None,
                        help='Backend base URL (default: CHART_BACKEND_URL or config)')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Fetch timeout in seconds (default: CHART_FETCH_TIMEOUT or config)')

    # Output
    parser.add_argument('--output', default='chart.png',
                        help='PNG output path (default: chart.png)')
    parser.add_argument('--theme', default='dark', choices=['dark', 'light'],
                        help='Chart theme (default: dark)')
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: WARNING)')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    for option in args.indicator:
        try:
            IndicatorConfig.parse(option)
        except ValueError as e:
            parser.error(f"Invalid --indicator value '{option}': {e}")

    print(f"📊 Ticker: {args.ticker.upper()}  ⏱️  Timeframe: {args.timeframe}")
    return asyncio.run(render_chart(args))


if __name__ == '__main__':
    sys.exit(main())
