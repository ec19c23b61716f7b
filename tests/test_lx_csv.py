# tests/test_lx_csv.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

import pytest
import pytz

from tradetracker.domain.lot import CloseType, GainType
from tradetracker.errors import MalformedInputError
from tradetracker.io.lx_csv import BtcTrade, OptionClose, PriceReferences, parse_line
from tradetracker.option import OptionSpec
from tradetracker.units.asset import TaxAsset, Underlying
from tradetracker.units.price import Price
from tradetracker.units.quantity import Quantity


BTC_LINE = 'Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,,'
OPTION_LINE = (
    'Expired,"6, BTC Mini 2021-07-16 Put $32,000.00",2021-07-16T22:00:00Z,'
    '2021-06-10T14:00:00Z,27.00,0.00,27.00,-1256-,,,'
)


def utc(*args):
    return datetime(*args, tzinfo=pytz.UTC)


def test_parse_btc_line():
    record = parse_line(BTC_LINE)
    assert isinstance(record, BtcTrade)
    assert record.close_type is CloseType.SELL
    assert record.quantity == Quantity.from_btc(Decimal("0.01"))
    assert record.date_c == utc(2021, 4, 14, 21)
    assert record.figure_e == Price("321.87")
    assert record.gain == Price("-307.18")
    assert record.gain_type is GainType.SHORT_TERM
    assert record.price_references() == [
        (utc(2021, 4, 14, 21), Price(62905)),
        (utc(2021, 7, 18, 21), Price(32187)),
    ]


def test_parse_option_line():
    record = parse_line(OPTION_LINE)
    assert isinstance(record, OptionClose)
    assert record.contracts == 6
    assert record.asset == TaxAsset.from_option(Underlying.BTC, OptionSpec.parse("2021-07-16P32000"))
    assert record.gain_type is GainType.OPTION_1256
    assert record.price_references() == []


@pytest.mark.parametrize("line", [
    "",
    'Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,',
    'Sold,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,,',
    'Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Medium-term,,,',
    'Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,,x',
    'Sell,"0.01, DOGE",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,,',
    'Sell,"0.01, BTC",April 14,2021-07-18T21:00:00Z,321.87,629.05,-307.18,Short-term,,,',
    'Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,lots,629.05,-307.18,Short-term,,,',
])
def test_malformed_lines_name_the_line(line):
    with pytest.raises(MalformedInputError) as excinfo:
        parse_line(line)
    assert repr(line) in str(excinfo.value)


def test_price_references_from_lines():
    refs = PriceReferences.from_lines([BTC_LINE, OPTION_LINE])
    assert len(refs) == 2
    assert refs.get(utc(2021, 7, 18, 21)) == Price(32187)
    assert refs.get(utc(2021, 7, 18, 22)) is None


def test_bad_line_number_is_reported():
    with pytest.raises(MalformedInputError, match="line 1"):
        PriceReferences.from_lines([BTC_LINE, "nonsense"])


def test_at_expiry_prefers_22_then_21():
    refs = PriceReferences({utc(2021, 7, 16, 21): Price(31500)})
    assert refs.at_expiry(utc(2021, 7, 16, 21)) == Price(31500)
    refs.add(utc(2021, 7, 16, 22), Price(31000))
    assert refs.at_expiry(utc(2021, 7, 16, 21)) == Price(31000)
    assert refs.at_expiry(utc(2021, 7, 17, 21)) is None


def test_conflicting_reference_keeps_first(caplog):
    refs = PriceReferences()
    refs.add(utc(2021, 7, 16, 22), Price(31000))
    with caplog.at_level(logging.WARNING):
        refs.add(utc(2021, 7, 16, 22), Price(31001))
    assert refs.get(utc(2021, 7, 16, 22)) == Price(31000)
    assert "Conflicting" in caplog.text


def test_unavailable_columns_drop_only_their_references():
    refs = PriceReferences.from_lines([
        'Sell,"0.01, BTC",*,2021-07-18T21:00:00Z,321.87,*,-,Short-term,,,',
    ])
    assert len(refs) == 1
    assert refs.get(utc(2021, 7, 18, 21)) == Price(32187)

    record = parse_line('Sell,"0.01, BTC",2021-04-14T21:00:00Z,2021-07-18T21:00:00Z,*,629.05,*,Short-term,,,')
    assert record.figure_e is None
    assert record.gain is None
    assert record.price_references() == [(utc(2021, 4, 14, 21), Price(62905))]

    # column F missing takes the column C reference with it
    record = parse_line('Sell,"0.01, BTC",2021-04-14T21:00:00Z,*,321.87,*,-,Short-term,,,')
    assert record.price_references() == []


EXERCISE_2022 = (
    '3197933266,Exercise - 1256 Option - Call,500.00,BTC-Mini-04FEB2022-40000-Call,'
    '2022-02-04T22:00:00.000Z,2022-01-27T23:08:44.124Z,"1,565.00","3,223.90","-1,658.90",- 1256 - '
)
EXERCISE_BTC_2022 = (
    '3197933266,Exercise - 1256 Option - Call,4.5752,BTC,*,2022-02-04T22:00:00.000Z,'
    '"185,957.997456",*,-,-'
)
EXPIRE_2022 = (
    '3197933266,Expire - 1256 Option - Call,15.00,BTC-Mini-14JAN2022-46000-Call,'
    '2022-01-14T22:00:00.000Z,2022-01-11T02:51:03.755Z,27.75,0.00,27.75,- 1256 - '
)
BIG_EXPIRE_2022 = (
    '3197933266,Expire - 1256 Option - Call,"1,000.00",BTC-Mini-10JUN2022-32000-Call,'
    '2022-06-10T21:00:00.000Z,2022-06-09T16:41:55.801Z,320.00,0.00,320.00,- 1256 -'
)


def test_parse_2022_option_lines():
    record = parse_line(EXERCISE_2022)
    assert isinstance(record, OptionClose)
    assert record.close_type is CloseType.EXERCISE
    assert record.contracts == 500
    assert record.asset == TaxAsset.from_option(Underlying.BTC, OptionSpec.parse("2022-02-04C40000"))
    assert record.figure_f == Price("3223.90")
    assert record.gain == Price("-1658.90")
    assert record.gain_type is GainType.OPTION_1256
    assert record.price_references() == [(utc(2022, 2, 4, 22), Price("40644.78"))]

    expired = parse_line(EXPIRE_2022)
    assert expired.close_type is CloseType.EXPIRY
    assert expired.contracts == 15
    assert expired.price_references() == []

    assert parse_line(BIG_EXPIRE_2022).contracts == 1000


def test_parse_2022_btc_line():
    record = parse_line(EXERCISE_BTC_2022)
    assert isinstance(record, BtcTrade)
    assert record.quantity == Quantity.from_btc(Decimal("4.5752"))
    assert record.date_c is None
    assert record.gain is None
    assert record.gain_type is None
    assert record.price_references() == [(utc(2022, 2, 4, 22), Price("40644.78"))]


def test_2022_references_agree(caplog):
    with caplog.at_level(logging.WARNING):
        refs = PriceReferences.from_lines([EXPIRE_2022, EXERCISE_2022, EXERCISE_BTC_2022, BIG_EXPIRE_2022])
    assert len(refs) == 1
    assert refs.at_expiry(utc(2022, 2, 4, 21)) == Price("40644.78")
    assert "Conflicting" not in caplog.text


@pytest.mark.parametrize("line", [
    EXERCISE_2022 + ",",
    EXERCISE_2022.replace("Exercise - 1256", "Assign - 1256"),
    EXERCISE_2022.replace("04FEB2022", "04FOO2022"),
    EXERCISE_2022.replace("04FEB2022", "31FEB2022"),
    EXERCISE_2022.replace("500.00", "500.50"),
    EXERCISE_2022.replace("- 1256 - ", "Medium-term"),
])
def test_malformed_2022_lines_name_the_line(line):
    with pytest.raises(MalformedInputError) as excinfo:
        parse_line(line)
    assert repr(line) in str(excinfo.value)
