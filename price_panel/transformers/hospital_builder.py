"""
Build hospital records: crosswalk enrichment and rate-data flag
"""
import pandas as pd
import logging
from pathlib import Path
from typing import Iterable, Optional

from config.settings import ColumnMapping
from price_panel.utils.frames import clean_text, ensure_columns

logger = logging.getLogger(__name__)

HOSPITAL_COLUMNS = [
    'hospital_id', 'name', 'address', 'city', 'state', 'tax_id',
    'ccn', 'aha_id', 'system_id', 'has_rate_data',
]

HOSPITAL_RENAME = {
    'hospital_name': 'name',
    'hospital_address': 'address',
    'hospital_city': 'city',
    'hospital_state': 'state',
    'ein': 'tax_id',
}


def normalize_tax_id(series: pd.Series) -> pd.Series:
    """EINs as 9-digit strings, left-padded with zeros"""
    text = clean_text(series)
    text = text.map(lambda v: v if v is None else v.split(".")[0].replace("-", ""))
    return text.map(lambda v: v.zfill(9) if v else None)


class HospitalBuilder:
    def __init__(self, crosswalk_path: Optional[Path] = None):
        self.crosswalk_path = crosswalk_path

    def load_crosswalk(self) -> pd.DataFrame:
        """One crosswalk row per EIN with ccn, aha_id and system_id"""
        if self.crosswalk_path is None or not Path(self.crosswalk_path).exists():
            raise FileNotFoundError(f"Crosswalk file not found: {self.crosswalk_path}")

        crosswalk = pd.read_csv(self.crosswalk_path, dtype=str, keep_default_na=False, na_values=[""])
        crosswalk = crosswalk.rename(columns=ColumnMapping.CROSSWALK_RENAME)
        crosswalk = ensure_columns(crosswalk, ['tax_id', 'ccn', 'aha_id', 'system_id'])

        crosswalk['tax_id'] = normalize_tax_id(crosswalk['tax_id'])
        crosswalk = crosswalk[crosswalk['tax_id'].notna()]
        return (crosswalk[['tax_id', 'ccn', 'aha_id', 'system_id']]
                .drop_duplicates(subset='tax_id', keep='first'))

    def build(self, hospitals: pd.DataFrame, crosswalk: pd.DataFrame,
              rate_hospital_ids: Iterable) -> pd.DataFrame:
        hosp = hospitals.rename(columns=HOSPITAL_RENAME)
        hosp = ensure_columns(hosp, ['hospital_id', 'name', 'address', 'city', 'state', 'tax_id'])
        hosp = hosp[['hospital_id', 'name', 'address', 'city', 'state', 'tax_id']].copy()
        hosp['hospital_id'] = clean_text(hosp['hospital_id'])
        hosp['tax_id'] = normalize_tax_id(hosp['tax_id'])

        # crosswalk has no null tax ids, so hospitals without one stay unmatched
        hosp = hosp.merge(crosswalk, on='tax_id', how='left')

        matched = int(hosp['aha_id'].notna().sum())
        pct = 100 * matched / len(hosp) if len(hosp) else 0.0
        logger.info(f"Crosswalk match: {matched} / {len(hosp)} ({pct:.1f}%)")

        ids_with_rates = {str(h).strip() for h in rate_hospital_ids if h is not None and not pd.isna(h)}
        hosp['has_rate_data'] = hosp['hospital_id'].isin(ids_with_rates)
        logger.info(f"Hospitals with rate data: {int(hosp['has_rate_data'].sum())} / {len(hosp)}")

        return hosp[HOSPITAL_COLUMNS]
