import numpy as np
import pandas as pd
import pytest

from forecaster_src.errors import DomainError, InsufficientDataError
from forecaster_src.series_utils import TimeSeries
from forecaster_src.transform_utils import (
    TransformKind, TransformSpec, guerrero_lambda, parse_transform, select_transform
)


@pytest.mark.parametrize("lam", [-1.0, -0.5, 0.0, 0.3, 1.0, 1.5, 2.0])
def test_box_cox_round_trip(lam):
    rng = np.random.default_rng(0)
    y = rng.uniform(0.5, 500.0, size=200)
    spec = TransformSpec.box_cox(lam)
    back = spec.backward(spec.forward(y))
    np.testing.assert_allclose(back, y, rtol=1e-9)


def test_series_round_trip(quarterly_series):
    spec = TransformSpec.box_cox(-0.3)
    transformed = spec.apply(quarterly_series)
    assert transformed.index.equals(quarterly_series.index)
    np.testing.assert_allclose(spec.invert(transformed).values, quarterly_series.values, rtol=1e-9)


def test_lambda_zero_is_log():
    assert TransformSpec.box_cox(0.0).kind == TransformKind.LOG
    np.testing.assert_allclose(TransformSpec.log().forward([np.e, 1.0]), [1.0, 0.0])


def test_non_positive_values_raise_domain_error():
    index = pd.period_range("2000Q1", periods=8, freq="Q")
    series = TimeSeries([1.0, 2.0, 0.0, 4.0, 5.0, 6.0, 7.0, 8.0], index, "Q")
    with pytest.raises(DomainError):
        TransformSpec.log().apply(series)
    with pytest.raises(DomainError):
        guerrero_lambda(series.shifted(-3.0))
    # identity accepts anything
    assert TransformSpec.identity().apply(series.shifted(-3.0)).values[0] == -2.0


def test_guerrero_growing_seasonal_amplitude(growing_series):
    lam = guerrero_lambda(growing_series)
    assert -1.0 < lam < 0.0
    assert lam == pytest.approx(-0.5, abs=0.05)


def test_guerrero_constant_series_returns_one():
    index = pd.period_range("2000Q1", periods=12, freq="Q")
    assert guerrero_lambda(TimeSeries(np.full(12, 5.0), index, "Q")) == 1.0


def test_guerrero_needs_two_subseries():
    index = pd.period_range("2000Q1", periods=7, freq="Q")
    with pytest.raises(InsufficientDataError):
        guerrero_lambda(TimeSeries(np.arange(1.0, 8.0), index, "Q"))


def test_select_transform_respects_bounds(growing_series):
    spec = select_transform(growing_series, bounds=(0.0, 1.0))
    assert spec.lam == pytest.approx(0.0, abs=1e-3)


def test_parse_transform():
    assert parse_transform("none").is_identity
    assert parse_transform("log").kind == TransformKind.LOG
    assert parse_transform("guerrero") == "guerrero"
    assert parse_transform("0.5").lam == 0.5
    assert TransformSpec.from_lambda(1.0).is_identity
    with pytest.raises(ValueError):
        parse_transform("cube")
