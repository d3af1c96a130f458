"""
Join classified rates to hospital attributes to produce the final price panel
"""
import pandas as pd
import logging

from price_panel.utils.frames import clean_text

logger = logging.getLogger(__name__)

PANEL_COLUMNS = [
    'hospital_id', 'ccn', 'name', 'state', 'aha_id', 'system_id',
    'code', 'code_type', 'label',
    'rate_category', 'charge_amount',
    'payer_name', 'plan_name', 'payer_category',
]

HOSPITAL_ATTRIBUTES = ['hospital_id', 'name', 'state', 'ccn', 'aha_id', 'system_id']


class PanelAssembler:
    """Hospital x service x payer panel; rates for unknown hospitals are dropped"""

    def assemble(self, rates: pd.DataFrame, hospitals: pd.DataFrame) -> pd.DataFrame:
        rates = rates.copy()
        rates['hospital_id'] = clean_text(rates['hospital_id'])
        hosp = hospitals[HOSPITAL_ATTRIBUTES].copy()
        hosp['hospital_id'] = clean_text(hosp['hospital_id'])
        hosp = hosp[hosp['hospital_id'].notna()].drop_duplicates(subset='hospital_id')

        panel = rates.merge(hosp, on='hospital_id', how='inner')[PANEL_COLUMNS]

        dropped = len(rates) - len(panel)
        if dropped:
            logger.info(f"Dropped {dropped:,} rate rows for hospitals without attributes")

        logger.info(
            f"Price panel: {len(panel):,} rows, "
            f"{panel['hospital_id'].nunique()} hospitals, "
            f"{panel['code'].nunique()} codes, "
            f"{panel['state'].nunique()} states"
        )
        return panel.reset_index(drop=True)
