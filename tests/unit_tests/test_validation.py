import numpy as np
import pandas as pd
import pytest

from alphaident.validation.base import Optional, Required, Schema
from alphaident.validation.schemas import psm_schema


def test_schema_casts_columns():
    # given
    schema = Schema(
        "test",
        [Required("a", np.float64), Optional("b", np.uint8), Optional("c", np.int64)],
    )
    df = pd.DataFrame({"a": [1, 2, 3], "b": [0, 1, 0]})

    # when
    schema.validate(df)

    # then
    assert df["a"].dtype == np.float64
    assert df["b"].dtype == np.uint8
    assert "c" not in df.columns


def test_schema_raises_on_missing_required_column():
    schema = Schema("test", [Required("a", np.float64)])

    with pytest.raises(ValueError, match="Column a is not present"):
        schema.validate(pd.DataFrame({"b": [1.0]}))


def test_schema_only_accepts_properties():
    with pytest.raises(ValueError):
        Schema("test", ["a"])


def test_psm_schema_warns_on_nan(caplog):
    # given
    df = pd.DataFrame(
        {
            "scan_index": [0, 1],
            "notch": [0, 0],
            "score": [10.0, np.nan],
            "decoy": [0, 1],
            "abs_mass_error": [0.0, 0.001],
        }
    )

    # when
    psm_schema.validate(df, warn_on_critical_values=True)

    # then
    assert "score has 1 NaNs" in caplog.text
    assert df["decoy"].dtype == np.uint8
