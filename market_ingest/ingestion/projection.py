"""
Declarative projection schemas: one entry per target table describing which record
fields are read, how they are coerced, which are required, the column order of the
projected row, the conflict policy and the multi-row expansion rule.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from market_ingest.db.models import KLINE_INTERVALS, MARKETS, ORDER_BOOK_DEPTHS
from market_ingest.ingestion.coercion import FieldType

SIDE_BID = "bid"
SIDE_ASK = "ask"


class RecordKind(str, Enum):
    KLINE = "kline"
    TICKER = "ticker"
    PUBLIC_TRADE = "public_trade"
    ORDER_BOOK = "order_book"
    LIQUIDATION = "liquidation"
    SENTIMENT_INDEX = "sentiment_index"
    INDICATOR = "indicator"


class ConflictPolicy(str, Enum):
    IGNORE_ON_CONFLICT = "ignore"
    UPDATE_ON_CONFLICT = "update"


class Expansion(str, Enum):
    SCALAR = "scalar"
    BOOK_LEVELS = "book_levels"


@dataclass(frozen=True)
class FieldSpec:
    column: str
    type: FieldType
    required: bool = False
    source: str | None = None

    @property
    def key(self) -> str:
        return self.source or self.column


@dataclass(frozen=True)
class ProjectionSchema:
    kind: RecordKind
    table: str
    fields: tuple[FieldSpec, ...]
    conflict_policy: ConflictPolicy
    conflict_keys: tuple[str, ...]
    expansion: Expansion = Expansion.SCALAR
    # Append-only tables have no natural key; rows get a deterministic ingest_key instead
    synthetic_key: bool = False
    touch_updated_at: bool = False
    columns: tuple[str, ...] = field(init=False)

    def __post_init__(self):
        if self.expansion is Expansion.BOOK_LEVELS:
            head = [f.column for f in self.fields if f.column in ("symbol", "engine_time")]
            tail = [f.column for f in self.fields if f.column not in ("symbol", "engine_time")]
            columns = (*head, "side", "price", "size", *tail)
        else:
            columns = tuple(f.column for f in self.fields)
        object.__setattr__(self, "columns", columns)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(f.key for f in self.fields if f.required)

    @property
    def write_columns(self) -> tuple[str, ...]:
        return (*self.columns, "ingest_key") if self.synthetic_key else self.columns


def _req(column: str, type_: FieldType, source: str | None = None) -> FieldSpec:
    return FieldSpec(column, type_, required=True, source=source)


def _opt(column: str, type_: FieldType, source: str | None = None) -> FieldSpec:
    return FieldSpec(column, type_, required=False, source=source)


DEC, FLT, INT, STR, BOOL, TS = (
    FieldType.DECIMAL, FieldType.FLOAT, FieldType.INTEGER, FieldType.STRING, FieldType.BOOLEAN, FieldType.TIMESTAMP,
)


def _kline(table: str) -> ProjectionSchema:
    return ProjectionSchema(
        kind=RecordKind.KLINE,
        table=table,
        fields=(
            _req("symbol", STR),
            _req("start_time", TS, "start"),
            _req("end_time", TS, "end"),
            _req("open_price", DEC, "open"),
            _req("close_price", DEC, "close"),
            _req("high_price", DEC, "high"),
            _req("low_price", DEC, "low"),
            _req("volume", DEC),
            _req("turnover", DEC),
        ),
        conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
        conflict_keys=("symbol", "start_time"),
    )


def _public_trade(table: str) -> ProjectionSchema:
    return ProjectionSchema(
        kind=RecordKind.PUBLIC_TRADE,
        table=table,
        fields=(
            _req("symbol", STR),
            _req("trade_time", TS),
            _req("trade_id", STR),
            _req("price", DEC),
            _req("size", DEC),
            _req("taker_side", STR),
            _opt("cross_sequence", INT),
            _req("is_block_trade", BOOL),
            _req("is_rpi", BOOL),
        ),
        conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
        conflict_keys=("symbol", "trade_id", "trade_time"),
    )


def _order_book(table: str) -> ProjectionSchema:
    return ProjectionSchema(
        kind=RecordKind.ORDER_BOOK,
        table=table,
        fields=(
            _req("symbol", STR),
            _req("engine_time", TS),
            _req("update_id", INT),
            _opt("cross_sequence", INT),
        ),
        conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
        conflict_keys=("ingest_key",),
        expansion=Expansion.BOOK_LEVELS,
        synthetic_key=True,
    )


SPOT_TICKERS = ProjectionSchema(
    kind=RecordKind.TICKER,
    table="spot_tickers",
    fields=(
        _req("symbol", STR),
        _req("timestamp", TS),
        _opt("cross_sequence", INT),
        _req("last_price", DEC),
        _req("high_price_24h", DEC),
        _req("low_price_24h", DEC),
        _req("prev_price_24h", DEC),
        _req("volume_24h", DEC),
        _req("turnover_24h", DEC),
        _req("price_24h_pcnt", DEC),
        _opt("usd_index_price", DEC),
    ),
    conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
    conflict_keys=("symbol", "timestamp"),
)

LINEAR_TICKERS = ProjectionSchema(
    kind=RecordKind.TICKER,
    table="linear_tickers",
    fields=(
        _req("symbol", STR),
        _req("timestamp", TS),
        _req("tick_direction", STR),
        _req("price_24h_pcnt", DEC),
        _req("last_price", DEC),
        _req("prev_price_24h", DEC),
        _req("high_price_24h", DEC),
        _req("low_price_24h", DEC),
        _req("prev_price_1h", DEC),
        _req("mark_price", DEC),
        _req("index_price", DEC),
        _req("open_interest", DEC),
        _req("open_interest_value", DEC),
        _req("turnover_24h", DEC),
        _req("volume_24h", DEC),
        _opt("funding_interval_hour", DEC),
        _opt("funding_cap", DEC),
        _req("next_funding_time", TS),
        _req("funding_rate", DEC),
        _req("bid1_price", DEC),
        _req("bid1_size", DEC),
        _req("ask1_price", DEC),
        _req("ask1_size", DEC),
        # Pre-listing and delivery extensions are absent for plain perpetuals
        _opt("pre_open_price", DEC),
        _opt("pre_qty", DEC),
        _opt("cur_pre_listing_phase", STR),
        _opt("delivery_time", TS),
        _opt("basis_rate", DEC),
        _opt("delivery_fee_rate", DEC),
        _opt("predicted_delivery_price", DEC),
        _opt("basis", DEC),
        _opt("basis_rate_year", DEC),
    ),
    conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
    conflict_keys=("symbol", "timestamp"),
)

LINEAR_ALL_LIQUIDATION = ProjectionSchema(
    kind=RecordKind.LIQUIDATION,
    table="linear_all_liquidation",
    fields=(
        _req("symbol", STR),
        _req("event_time", TS),
        _req("position_side", STR, "side"),
        _req("executed_size", DEC, "size"),
        _req("bankruptcy_price", DEC, "price"),
    ),
    conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
    conflict_keys=("ingest_key",),
    synthetic_key=True,
)

FEAR_GREED_INDEX = ProjectionSchema(
    kind=RecordKind.SENTIMENT_INDEX,
    table="fear_greed_index",
    fields=(
        _req("score", INT, "value"),
        _req("classification", STR),
        _req("update_time", FieldType.EPOCH_SECONDS),
        _opt("btc_price", DEC),
        _opt("btc_volume", DEC),
    ),
    conflict_policy=ConflictPolicy.IGNORE_ON_CONFLICT,
    conflict_keys=("update_time",),
)

INDICATORS = ProjectionSchema(
    kind=RecordKind.INDICATOR,
    table="indicators",
    fields=(
        _req("symbol", STR),
        _req("timestamp", TS),
        _req("close_price", FLT),
        *(_opt(name, FLT) for name in (
            "sma_50", "sma_100", "sma_200", "ema_50", "ema_100", "ema_200",
            "rsi_14", "stochastic_14",
            "macd_line", "macd_signal", "macd_histogram",
            "bb_middle", "bb_upper", "bb_lower", "bb_width", "bb_percent_b",
            "atr_14", "std_dev_20", "vwap", "volume_sma_20",
            "market_cap",
        )),
        _opt("circulating_supply", INT),
        _opt("market_cap_to_volume", FLT),
    ),
    conflict_policy=ConflictPolicy.UPDATE_ON_CONFLICT,
    conflict_keys=("symbol", "timestamp"),
    touch_updated_at=True,
)


def _build_registry() -> dict[str, ProjectionSchema]:
    schemas = [SPOT_TICKERS, LINEAR_TICKERS, LINEAR_ALL_LIQUIDATION, FEAR_GREED_INDEX, INDICATORS]
    for market in MARKETS:
        schemas.extend(_kline(f"{market}_kline_{interval}") for interval in KLINE_INTERVALS)
        schemas.extend(_order_book(f"{market}_order_book_{depth}") for depth in ORDER_BOOK_DEPTHS)
        schemas.append(_public_trade(f"{market}_public_trade"))
    return {schema.table: schema for schema in schemas}


SCHEMAS: dict[str, ProjectionSchema] = _build_registry()


def schema_for(table: str) -> ProjectionSchema | None:
    return SCHEMAS.get(table)
