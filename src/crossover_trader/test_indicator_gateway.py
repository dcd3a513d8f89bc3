from unittest.mock import MagicMock

import pytest
import requests

from crossover_trader.exceptions import IndicatorError
from crossover_trader.indicator_gateway import HttpIndicatorGateway, IndicatorKind, LocalIndicatorGateway


def test_local_sma_keeps_length_and_partial_head():
    gateway = LocalIndicatorGateway()
    result = gateway.compute(IndicatorKind.SMA, [1, 2, 3, 4, 5], 3)

    assert result == pytest.approx([1.0, 1.5, 2.0, 3.0, 4.0])
    assert gateway.sma([1, 2, 3, 4, 5], 3) == result


def test_local_ema_and_bollinger():
    gateway = LocalIndicatorGateway()
    values = [10, 10, 10, 10]

    assert gateway.compute(IndicatorKind.EMA, values, 2) == pytest.approx([10.0] * 4)

    upper = gateway.compute(IndicatorKind.BOLLINGER_UPPER, [1, 3], 2, multiplier=2.0)
    lower = gateway.compute(IndicatorKind.BOLLINGER_LOWER, [1, 3], 2, multiplier=2.0)
    # mean 2, population std 1
    assert upper[-1] == pytest.approx(4.0)
    assert lower[-1] == pytest.approx(0.0)
    assert upper[0] == pytest.approx(1.0)


def test_local_rejects_bad_period():
    with pytest.raises(IndicatorError):
        LocalIndicatorGateway().compute(IndicatorKind.SMA, [1, 2, 3], 0)


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = str(body)
    response.json.return_value = body
    return response


def test_http_posts_calculate_request():
    session = MagicMock()
    session.headers = {}
    session.post.return_value = _response(body={'numbers': [1.0, 1.5, 2.5]})

    gateway = HttpIndicatorGateway('http://indicators:50052', timeout=3, session=session)
    result = gateway.compute(IndicatorKind.SMA, [1, 2, 3], 2)

    assert result == [1.0, 1.5, 2.5]
    session.post.assert_called_once_with(
        'http://indicators:50052/calculate',
        json={'indicator': 'SMA', 'opt': {'period': 2, 'multiplier': 0.0}, 'numbers': [1.0, 2.0, 3.0]},
        timeout=3
    )


@pytest.mark.parametrize('response', [
    _response(status_code=503, body={'error': 'down'}),
    _response(body={'values': [1.0]}),
    _response(body={'numbers': [1.0]}),
])
def test_http_failures_raise_indicator_error(response):
    session = MagicMock()
    session.headers = {}
    session.post.return_value = response

    gateway = HttpIndicatorGateway('http://indicators:50052', session=session)
    with pytest.raises(IndicatorError):
        gateway.compute(IndicatorKind.SMA, [1, 2, 3], 2)


@pytest.mark.parametrize('body', [
    {'numbers': None},
    {'numbers': [None, None, None]},
    {'numbers': 'abc'},
    {'numbers': [1.0, 'x', 2.0]},
    {'numbers': {'a': 1.0}},
    [1.0, 2.0, 3.0],
    None,
])
def test_http_malformed_body_raises_indicator_error(body):
    session = MagicMock()
    session.headers = {}
    session.post.return_value = _response(body=body)

    gateway = HttpIndicatorGateway('http://indicators:50052', session=session)
    with pytest.raises(IndicatorError):
        gateway.compute(IndicatorKind.SMA, [1, 2, 3], 2)


def test_http_invalid_json_raises_indicator_error():
    session = MagicMock()
    session.headers = {}
    response = _response()
    response.json.side_effect = ValueError("Expecting value")
    session.post.return_value = response

    gateway = HttpIndicatorGateway('http://indicators:50052', session=session)
    with pytest.raises(IndicatorError):
        gateway.compute(IndicatorKind.SMA, [1, 2, 3], 2)


def test_http_transport_error_raises_indicator_error():
    session = MagicMock()
    session.headers = {}
    session.post.side_effect = requests.ConnectionError("refused")

    gateway = HttpIndicatorGateway('http://indicators:50052', session=session)
    with pytest.raises(IndicatorError):
        gateway.compute(IndicatorKind.SMA, [1, 2, 3], 2)
