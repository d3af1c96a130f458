"""
Unpivot wide charge rows into long-format rate observations
"""
import pandas as pd
import logging
from typing import Dict, List, Optional

from config.settings import ColumnMapping
from price_panel.utils.frames import as_number, clean_text, ensure_columns

logger = logging.getLogger(__name__)

RATE_CATEGORIES = ['negotiated', 'gross', 'cash', 'min', 'max']

# Non-negotiated charges hold one value per hospital x service
DEDUP_KEY = ['hospital_id', 'description', 'drg_code', 'procedure_code']

IDENTIFIER_COLUMNS = ['hospital_id', 'description', 'payer_name', 'plan_name', 'setting', 'billing_class']


class RateUnpivoter:
    """Turn one raw charge row into up to five rate observations, one per populated charge type"""

    def __init__(self, charge_columns: Optional[Dict[str, str]] = None,
                 procedure_columns: Optional[List[str]] = None,
                 drg_column: str = ColumnMapping.DRG_COLUMN):
        self.charge_columns = charge_columns or ColumnMapping.CHARGE_COLUMNS
        self.procedure_columns = procedure_columns or ColumnMapping.PROCEDURE_COLUMNS
        self.drg_column = drg_column
        self.output_columns = ColumnMapping.OBSERVATION_COLUMNS

    def _prepare(self, raw: pd.DataFrame) -> pd.DataFrame:
        """Normalize identifiers and derive drg_code / procedure_code"""
        df = ensure_columns(raw.copy(), IDENTIFIER_COLUMNS + [self.drg_column])

        for col in IDENTIFIER_COLUMNS:
            df[col] = clean_text(df[col])

        df['drg_code'] = clean_text(df[self.drg_column])

        procedure = pd.Series([None] * len(df), index=df.index, dtype=object)
        for col in self.procedure_columns:
            if col in df.columns:
                procedure = procedure.where(procedure.notna(), clean_text(df[col]))
        df['procedure_code'] = procedure

        return df

    def _project(self, df: pd.DataFrame, category: str) -> pd.DataFrame:
        source = self.charge_columns[category]
        if source not in df.columns:
            logger.debug(f"No {source} column, no {category} observations")
            return pd.DataFrame(columns=self.output_columns)

        amounts = as_number(df[source])
        part = df[amounts.notna() & (amounts > 0)].copy()
        part['charge_amount'] = amounts[part.index]
        part['rate_category'] = category

        if category != 'negotiated':
            part['payer_name'] = None
            part['plan_name'] = None
            part = part.drop_duplicates(subset=DEDUP_KEY, keep='first')

        return part[self.output_columns]

    def unpivot(self, raw: pd.DataFrame) -> pd.DataFrame:
        if raw is None or raw.empty:
            return pd.DataFrame(columns=self.output_columns)

        df = self._prepare(raw)

        parts = []
        for category in RATE_CATEGORIES:
            part = self._project(df, category)
            logger.info(f"    {category.capitalize()}: {len(part):,}")
            if not part.empty:
                parts.append(part)

        if not parts:
            return pd.DataFrame(columns=self.output_columns)

        return pd.concat(parts, ignore_index=True)[self.output_columns]
