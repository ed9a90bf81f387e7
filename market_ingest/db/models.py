from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, Float, Index, Integer, Numeric, String, Table, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# BIGINT primary keys do not autoincrement on SQLite
_PK = BigInteger().with_variant(Integer, "sqlite")
_PRICE = Numeric(38, 18)

KLINE_INTERVALS = ("1m", "5m", "15m", "60m", "240m", "1d")
ORDER_BOOK_DEPTHS = (1, 50, 200, 1000)
MARKETS = ("spot", "linear")


class StreamOffset(Base):
    __tablename__ = "stream_offsets"

    stream_name = Column(String, primary_key=True)
    offset = Column("offset", BigInteger, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


def _id_column() -> Column:
    return Column("id", _PK, primary_key=True, autoincrement=True)


def _created_at() -> Column:
    return Column("created_at", DateTime(timezone=True), server_default=func.now())


def _ingest_key() -> Column:
    return Column("ingest_key", String(40), nullable=False, unique=True)


def _kline_table(name: str) -> Table:
    return Table(
        name, Base.metadata,
        _id_column(),
        Column("symbol", String, nullable=False),
        Column("start_time", DateTime(timezone=True), nullable=False),
        Column("end_time", DateTime(timezone=True), nullable=False),
        Column("open_price", _PRICE, nullable=False),
        Column("close_price", _PRICE, nullable=False),
        Column("high_price", _PRICE, nullable=False),
        Column("low_price", _PRICE, nullable=False),
        Column("volume", _PRICE, nullable=False),
        Column("turnover", _PRICE, nullable=False),
        _created_at(),
        UniqueConstraint("symbol", "start_time", name=f"uix_{name}_symbol_start_time"),
    )


def _public_trade_table(name: str) -> Table:
    return Table(
        name, Base.metadata,
        _id_column(),
        Column("symbol", String, nullable=False),
        Column("trade_time", DateTime(timezone=True), nullable=False),
        Column("trade_id", String, nullable=False),
        Column("price", _PRICE, nullable=False),
        Column("size", _PRICE, nullable=False),
        Column("taker_side", String, nullable=False),
        Column("cross_sequence", BigInteger, nullable=True),
        Column("is_block_trade", Boolean, nullable=False),
        Column("is_rpi", Boolean, nullable=False),
        _created_at(),
        UniqueConstraint("symbol", "trade_id", "trade_time", name=f"uix_{name}_symbol_trade_id_trade_time"),
        Index(f"ix_{name}_symbol_trade_time", "symbol", "trade_time"),
    )


def _order_book_table(name: str) -> Table:
    return Table(
        name, Base.metadata,
        _id_column(),
        Column("symbol", String, nullable=False),
        Column("engine_time", DateTime(timezone=True), nullable=False),
        Column("side", String(3), nullable=False),
        Column("price", _PRICE, nullable=False),
        Column("size", _PRICE, nullable=False),
        Column("update_id", BigInteger, nullable=False),
        Column("cross_sequence", BigInteger, nullable=True),
        _ingest_key(),
        _created_at(),
        Index(f"ix_{name}_symbol_engine_time", "symbol", "engine_time"),
    )


spot_tickers = Table(
    "spot_tickers", Base.metadata,
    _id_column(),
    Column("symbol", String, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("cross_sequence", BigInteger, nullable=True),
    Column("last_price", _PRICE, nullable=False),
    Column("high_price_24h", _PRICE, nullable=False),
    Column("low_price_24h", _PRICE, nullable=False),
    Column("prev_price_24h", _PRICE, nullable=False),
    Column("volume_24h", _PRICE, nullable=False),
    Column("turnover_24h", _PRICE, nullable=False),
    Column("price_24h_pcnt", _PRICE, nullable=False),
    Column("usd_index_price", _PRICE, nullable=True),
    _created_at(),
    UniqueConstraint("symbol", "timestamp", name="uix_spot_tickers_symbol_timestamp"),
)

linear_tickers = Table(
    "linear_tickers", Base.metadata,
    _id_column(),
    Column("symbol", String, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("tick_direction", String, nullable=False),
    Column("price_24h_pcnt", _PRICE, nullable=False),
    Column("last_price", _PRICE, nullable=False),
    Column("prev_price_24h", _PRICE, nullable=False),
    Column("high_price_24h", _PRICE, nullable=False),
    Column("low_price_24h", _PRICE, nullable=False),
    Column("prev_price_1h", _PRICE, nullable=False),
    Column("mark_price", _PRICE, nullable=False),
    Column("index_price", _PRICE, nullable=False),
    Column("open_interest", _PRICE, nullable=False),
    Column("open_interest_value", _PRICE, nullable=False),
    Column("turnover_24h", _PRICE, nullable=False),
    Column("volume_24h", _PRICE, nullable=False),
    Column("funding_interval_hour", _PRICE, nullable=True),
    Column("funding_cap", _PRICE, nullable=True),
    Column("next_funding_time", DateTime(timezone=True), nullable=False),
    Column("funding_rate", _PRICE, nullable=False),
    Column("bid1_price", _PRICE, nullable=False),
    Column("bid1_size", _PRICE, nullable=False),
    Column("ask1_price", _PRICE, nullable=False),
    Column("ask1_size", _PRICE, nullable=False),
    Column("pre_open_price", _PRICE, nullable=True),
    Column("pre_qty", _PRICE, nullable=True),
    Column("cur_pre_listing_phase", String, nullable=True),
    Column("delivery_time", DateTime(timezone=True), nullable=True),
    Column("basis_rate", _PRICE, nullable=True),
    Column("delivery_fee_rate", _PRICE, nullable=True),
    Column("predicted_delivery_price", _PRICE, nullable=True),
    Column("basis", _PRICE, nullable=True),
    Column("basis_rate_year", _PRICE, nullable=True),
    _created_at(),
    UniqueConstraint("symbol", "timestamp", name="uix_linear_tickers_symbol_timestamp"),
)

linear_all_liquidation = Table(
    "linear_all_liquidation", Base.metadata,
    _id_column(),
    Column("symbol", String, nullable=False),
    Column("event_time", DateTime(timezone=True), nullable=False),
    Column("position_side", String, nullable=False),
    Column("executed_size", _PRICE, nullable=False),
    Column("bankruptcy_price", _PRICE, nullable=False),
    _ingest_key(),
    _created_at(),
    Index("ix_linear_all_liquidation_symbol_event_time", "symbol", "event_time"),
)

fear_greed_index = Table(
    "fear_greed_index", Base.metadata,
    _id_column(),
    Column("score", Integer, nullable=False),
    Column("classification", String, nullable=False),
    Column("update_time", DateTime(timezone=True), nullable=False),
    Column("btc_price", _PRICE, nullable=True),
    Column("btc_volume", _PRICE, nullable=True),
    _created_at(),
    UniqueConstraint("update_time", name="uix_fear_greed_index_update_time"),
)

indicators = Table(
    "indicators", Base.metadata,
    _id_column(),
    Column("symbol", String, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("close_price", Float, nullable=False),
    # Moving averages
    Column("sma_50", Float), Column("sma_100", Float), Column("sma_200", Float),
    Column("ema_50", Float), Column("ema_100", Float), Column("ema_200", Float),
    # Momentum
    Column("rsi_14", Float), Column("stochastic_14", Float),
    # MACD
    Column("macd_line", Float), Column("macd_signal", Float), Column("macd_histogram", Float),
    # Bollinger bands
    Column("bb_middle", Float), Column("bb_upper", Float), Column("bb_lower", Float),
    Column("bb_width", Float), Column("bb_percent_b", Float),
    # Volatility and volume
    Column("atr_14", Float), Column("std_dev_20", Float),
    Column("vwap", Float), Column("volume_sma_20", Float),
    # Fundamentals
    Column("market_cap", Float), Column("circulating_supply", BigInteger), Column("market_cap_to_volume", Float),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("symbol", "timestamp", name="uix_indicators_symbol_timestamp"),
)

for _market in MARKETS:
    for _interval in KLINE_INTERVALS:
        _kline_table(f"{_market}_kline_{_interval}")
    for _depth in ORDER_BOOK_DEPTHS:
        _order_book_table(f"{_market}_order_book_{_depth}")
    _public_trade_table(f"{_market}_public_trade")
