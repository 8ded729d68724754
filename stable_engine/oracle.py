"""
oracle.py - Price feed interface and staleness-checking adapter

Classes:
- RoundData: One answer reported by a price feed
- PriceFeed: Protocol every price source must satisfy
- OracleAdapter: Validates freshness and converts between asset amounts and USD
- StaticPriceFeed: In-memory feed for simulations and tests

Raw feed answers carry FEED_DECIMALS (8) decimals. The adapter lifts them
to the engine's 18-decimal scale before any conversion.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

from .core import (
    DECIMALS, DEFAULT_MAX_PRICE_AGE, FEED_DECIMALS, PRECISION,
    StaleOracleData, ValidationError,
)
from .fixed_point import mul_div, to_fixed


@dataclass(frozen=True, slots=True)
class RoundData:
    """
    One answer reported by a price feed.

    Attributes:
        round_id: Identifier of the round being reported.
        answer: Raw price with the feed's decimals.
        started_at: When the round started.
        updated_at: When the answer was last written (None if never).
        answered_in_round: Round in which the answer was computed. Lower
            than round_id means the feed is serving a carried-over answer.
    """
    round_id: int
    answer: int
    started_at: Optional[datetime]
    updated_at: Optional[datetime]
    answered_in_round: int


@runtime_checkable
class PriceFeed(Protocol):
    """Protocol for external price sources."""

    decimals: int

    def latest_round_data(self) -> RoundData:
        """Return the most recent round reported by the feed."""
        ...


class OracleAdapter:
    """
    Staleness-checking wrapper around the registered price feeds.

    Every read goes through get_price(), which refuses answers that are too
    old, carried over from an earlier round, or non-positive. There is no
    fallback: a stale feed blocks every operation that needs its price
    until a fresh answer arrives.
    """

    def __init__(
        self,
        feeds: Mapping[str, PriceFeed],
        clock: Callable[[], datetime],
        max_price_age: timedelta = DEFAULT_MAX_PRICE_AGE,
    ):
        if max_price_age <= timedelta(0):
            raise ValidationError(f"max_price_age must be positive, got {max_price_age}")
        self._feeds: Dict[str, PriceFeed] = dict(feeds)
        self._clock = clock
        self.max_price_age = max_price_age

    def feed(self, asset: str) -> PriceFeed:
        try:
            return self._feeds[asset]
        except KeyError:
            raise ValidationError(f"No price feed registered for {asset}") from None

    def get_price(self, asset: str) -> Tuple[int, datetime, int]:
        """
        Read and validate the latest answer for an asset.

        Returns:
            (raw_price, updated_at, round_id)

        Raises:
            StaleOracleData: If the answer was never written, was carried over
                from an earlier round, is older than max_price_age, or is not
                a positive price.
        """
        data = self.feed(asset).latest_round_data()

        if data.updated_at is None:
            raise StaleOracleData(f"{asset} feed has never been updated")
        if data.answered_in_round < data.round_id:
            raise StaleOracleData(
                f"{asset} feed round {data.round_id} was answered in round {data.answered_in_round}"
            )
        age = self._clock() - data.updated_at
        if age > self.max_price_age:
            raise StaleOracleData(
                f"{asset} price is {age} old, maximum is {self.max_price_age}"
            )
        if data.answer <= 0:
            raise StaleOracleData(f"{asset} feed reported non-positive price {data.answer}")

        return data.answer, data.updated_at, data.round_id

    def normalized_price(self, asset: str) -> int:
        """Latest price of one whole unit of asset, in USD with 18 decimals."""
        raw_price, _, _ = self.get_price(asset)
        decimals = self.feed(asset).decimals
        if decimals <= DECIMALS:
            return raw_price * 10 ** (DECIMALS - decimals)
        return raw_price // 10 ** (decimals - DECIMALS)

    def usd_value(self, asset: str, amount: int) -> int:
        """USD value (18 decimals) of amount units of asset."""
        return mul_div(amount, self.normalized_price(asset), PRECISION)

    def asset_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Units of asset worth usd_amount; inverse of usd_value up to truncation."""
        return mul_div(usd_amount, PRECISION, self.normalized_price(asset))


class StaticPriceFeed:
    """
    In-memory price feed.

    Each update_answer() opens a new round answered in itself, so the feed
    stays round-consistent unless set_round_data() is used to craft a stuck
    or carried-over round.

    Example:
        feed = StaticPriceFeed.from_price("2000", updated_at=datetime(2025, 1, 1))
        feed.update_answer(to_fixed("18", FEED_DECIMALS), datetime(2025, 1, 2))
    """

    def __init__(
        self,
        answer: int,
        updated_at: Optional[datetime] = None,
        decimals: int = FEED_DECIMALS,
    ):
        self.decimals = decimals
        self._round = RoundData(
            round_id=1,
            answer=answer,
            started_at=updated_at,
            updated_at=updated_at,
            answered_in_round=1,
        )

    @classmethod
    def from_price(
        cls,
        price: Union[Decimal, str, int],
        updated_at: Optional[datetime] = None,
        decimals: int = FEED_DECIMALS,
    ) -> StaticPriceFeed:
        """Create a feed from a human-readable USD price."""
        return cls(to_fixed(price, decimals), updated_at, decimals)

    def latest_round_data(self) -> RoundData:
        return self._round

    @property
    def latest_answer(self) -> int:
        return self._round.answer

    def update_answer(self, answer: int, updated_at: datetime) -> None:
        """Publish a new answer in a fresh round."""
        next_round = self._round.round_id + 1
        self._round = RoundData(
            round_id=next_round,
            answer=answer,
            started_at=updated_at,
            updated_at=updated_at,
            answered_in_round=next_round,
        )

    def update_price(self, price: Union[Decimal, str, int], updated_at: datetime) -> None:
        """Publish a human-readable USD price in a fresh round."""
        self.update_answer(to_fixed(price, self.decimals), updated_at)

    def set_round_data(
        self,
        round_id: int,
        answer: int,
        started_at: Optional[datetime],
        updated_at: Optional[datetime],
        answered_in_round: int,
    ) -> None:
        """Overwrite the latest round verbatim."""
        self._round = RoundData(round_id, answer, started_at, updated_at, answered_in_round)

    def __repr__(self):
        return (
            f"StaticPriceFeed(answer={self._round.answer}, decimals={self.decimals}, "
            f"round={self._round.round_id})"
        )
