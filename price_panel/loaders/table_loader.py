"""
Read and write pipeline tables (CSV with header, or parquet)
"""
import pandas as pd
import logging
import os
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class TableLoader:
    """Save intermediate and final tables, and read extracts back as strings"""

    def __init__(self, output_format: str = "csv"):
        self.output_format = output_format

    def save_dataframe(self, df: pd.DataFrame, output_path: Path,
                       output_format: Optional[str] = None) -> Path:
        """Write a table atomically; returns the path actually written"""
        output_format = output_format or self.output_format
        output_path = Path(output_path)
        if output_format == "parquet":
            output_path = output_path.with_suffix(".parquet")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = output_path.with_name(output_path.name + ".tmp")

        if output_format == "parquet":
            self._prepare_for_parquet(df).to_parquet(tmp_path, index=False)
        else:
            df.to_csv(tmp_path, index=False)
        os.replace(tmp_path, output_path)

        logger.info(f"Wrote {output_path}: {len(df):,} rows")
        return output_path

    def _prepare_for_parquet(self, df: pd.DataFrame) -> pd.DataFrame:
        """Prepare dataframe for parquet serialization"""
        df = df.copy()

        # Convert mixed-type object columns to string to avoid Arrow errors
        for col in df.columns:
            if df[col].dtype == 'object':
                sample_types = df[col].dropna().head(1000).apply(lambda x: type(x)).nunique()
                if sample_types > 1:
                    logger.debug(f"Converting mixed-type column {col} to string")
                    df[col] = df[col].where(df[col].isna(), df[col].astype(str))

        return df

    def read_table(self, path: Path, columns: Optional[List[str]] = None) -> pd.DataFrame:
        """Read a table with every column as string; empty cells become NaN"""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Required table not found: {path}")

        if path.suffix == ".parquet":
            df = pd.read_parquet(path, columns=columns)
            return df.astype(object).where(df.notna(), None)

        return pd.read_csv(path, dtype=str, usecols=columns,
                           keep_default_na=False, na_values=[""])

    @staticmethod
    def describe_outputs(directory: Path) -> None:
        for f in sorted(Path(directory).glob("*.csv")):
            logger.info(f"  {f.name}: {f.stat().st_size / 1e6:.1f} MB")
