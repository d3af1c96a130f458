"""
Combine DRG and procedure rate extracts, restrict them to the target codes and drop invalid charges
"""
import pandas as pd
import logging
from dataclasses import dataclass, field
from typing import List

from config.settings import ColumnMapping
from price_panel.utils.code_registry import (
    CODE_TYPE_DRG, CODE_TYPE_PROCEDURE, TargetCode, TargetCodeRegistry,
)
from price_panel.utils.frames import as_number, clean_text, ensure_columns, valid_charge_mask

logger = logging.getLogger(__name__)


@dataclass
class CleaningResult:
    rates: pd.DataFrame
    input_rows: int = 0
    dropped_not_target: int = 0
    dropped_invalid: int = 0
    ambiguous_code_rows: int = 0
    missing_codes: List[TargetCode] = field(default_factory=list)

    @property
    def dropped_invalid_pct(self) -> float:
        candidates = len(self.rates) + self.dropped_invalid
        return 100.0 * self.dropped_invalid / candidates if candidates else 0.0


class RateCleaner:
    """Unify DRG/procedure codes, inner-join the target registry and keep positive finite charges"""

    def __init__(self, registry: TargetCodeRegistry):
        self.registry = registry

    def combine(self, drg_rates: pd.DataFrame, procedure_rates: pd.DataFrame) -> pd.DataFrame:
        frames = [
            ensure_columns(df.copy(), ColumnMapping.OBSERVATION_COLUMNS)
            for df in (drg_rates, procedure_rates) if df is not None
        ]
        if not frames:
            return pd.DataFrame(columns=ColumnMapping.OBSERVATION_COLUMNS)
        rates = pd.concat(frames, ignore_index=True)
        logger.info(f"Combined rates: {len(rates):,} rows")
        return rates

    def derive_codes(self, rates: pd.DataFrame) -> pd.DataFrame:
        """code/code_type from drg_code first, then procedure_code"""
        drg = clean_text(rates['drg_code'])
        procedure = clean_text(rates['procedure_code'])
        has_drg = drg.notna()
        has_procedure = procedure.notna()

        rates = rates.copy()
        rates['code'] = drg.where(has_drg, procedure)
        rates['code_type'] = None
        rates.loc[has_procedure, 'code_type'] = CODE_TYPE_PROCEDURE
        rates.loc[has_drg, 'code_type'] = CODE_TYPE_DRG
        return rates

    def count_ambiguous(self, rates: pd.DataFrame) -> int:
        """Rows populating both code fields; upstream extraction should never produce them"""
        both = int((clean_text(rates['drg_code']).notna() & clean_text(rates['procedure_code']).notna()).sum())
        if both:
            logger.warning(f"{both} rows carry both a DRG and a procedure code; using the DRG")
        return both

    def drop_duplicate_ambiguous(self, rates: pd.DataFrame) -> pd.DataFrame:
        """A row carrying both codes can arrive once per extract; keep one copy"""
        both = clean_text(rates['drg_code']).notna() & clean_text(rates['procedure_code']).notna()
        repeated = both & rates.duplicated(subset=ColumnMapping.OBSERVATION_COLUMNS, keep='first')
        if repeated.any():
            logger.warning(f"Dropped {int(repeated.sum())} repeated rows present in both extracts")
        return rates[~repeated].reset_index(drop=True)

    def restrict_to_targets(self, rates: pd.DataFrame) -> pd.DataFrame:
        return rates.merge(self.registry.to_frame(), on=['code', 'code_type'], how='inner')

    def drop_invalid_charges(self, rates: pd.DataFrame) -> pd.DataFrame:
        mask = valid_charge_mask(rates['charge_amount'])
        rates = rates[mask].copy()
        rates['charge_amount'] = as_number(rates['charge_amount']).astype(float)
        return rates.reset_index(drop=True)

    def coverage_gaps(self, rates: pd.DataFrame) -> List[TargetCode]:
        """Target codes with zero surviving rows"""
        present = set(zip(rates['code'], rates['code_type']))
        return [entry for entry in self.registry if (entry.code, entry.code_type) not in present]

    def clean(self, drg_rates: pd.DataFrame, procedure_rates: pd.DataFrame) -> CleaningResult:
        rates = self.combine(drg_rates, procedure_rates)
        rates = self.drop_duplicate_ambiguous(rates)
        ambiguous = self.count_ambiguous(rates)
        rates = self.derive_codes(rates)
        input_rows = len(rates)

        rates = self.restrict_to_targets(rates)
        dropped_not_target = input_rows - len(rates)
        logger.info(f"Kept {len(rates):,} rows for target codes ({dropped_not_target:,} other codes dropped)")

        n_before = len(rates)
        rates = self.drop_invalid_charges(rates)
        result = CleaningResult(
            rates=rates,
            input_rows=input_rows,
            dropped_not_target=dropped_not_target,
            dropped_invalid=n_before - len(rates),
            ambiguous_code_rows=ambiguous,
        )
        logger.info(
            f"Dropped {result.dropped_invalid:,} invalid charges "
            f"({result.dropped_invalid_pct:.1f}%), {len(rates):,} remaining"
        )

        result.missing_codes = self.coverage_gaps(rates)
        if result.missing_codes:
            listed = ", ".join(f"{e.code} ({e.code_type})" for e in result.missing_codes)
            logger.warning(f"{len(result.missing_codes)} target codes have no rate rows: {listed}")
        else:
            logger.info(f"All {len(self.registry)} target codes have rate rows")

        return result
