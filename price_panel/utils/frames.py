"""
Column normalization helpers shared by the transformers
"""
import numpy as np
import pandas as pd
from typing import Iterable


def clean_text(series: pd.Series) -> pd.Series:
    """Strip strings and turn empty values into missing"""
    text = series.astype(object).where(series.notna(), None)
    text = text.map(lambda v: v if v is None else str(v).strip())
    return text.where(text.map(lambda v: v is not None and v != ""), None)


def as_number(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors='coerce')


def is_present(series: pd.Series) -> pd.Series:
    """True where a text value is non-null and non-empty"""
    return clean_text(series).notna()


def valid_charge_mask(series: pd.Series) -> pd.Series:
    """Charge is numeric, finite and strictly positive"""
    values = as_number(series)
    return values.notna() & np.isfinite(values) & (values > 0)


def ensure_columns(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """Add any missing columns as all-null"""
    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df


def ambiguous_code_mask(df: pd.DataFrame, drg_column: str, procedure_columns: Iterable[str]) -> pd.Series:
    """True where a row populates the DRG column and at least one procedure column"""
    if drg_column not in df.columns:
        return pd.Series(False, index=df.index)
    has_procedure = pd.Series(False, index=df.index)
    for col in procedure_columns:
        if col in df.columns:
            has_procedure |= is_present(df[col])
    return is_present(df[drg_column]) & has_procedure
