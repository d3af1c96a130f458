"""
Extract target-code rate rows from the hosted SQL API, one hospital at a time

The remote rate table has a composite primary key (hospital_id, row_id) and no
secondary index on the code columns, so a global WHERE ms_drg IN (...) is a full
scan. Each hospital's rows are contiguous in the key, which makes a per-hospital
filter cheap; pages within a hospital are fetched with keyset pagination on row_id.
"""
import logging
import time
from typing import Callable, Iterable, NamedTuple, Optional

import pandas as pd
from tqdm import tqdm

from config.settings import ColumnMapping, ExtractionConfig
from price_panel.utils.api_clients import DoltHubClient, RemoteQueryError
from price_panel.utils.code_registry import CODE_TYPE_DRG, CODE_TYPE_PROCEDURE
from price_panel.utils.extraction_report import ExtractionReport, UnitResult, UnitStatus
from price_panel.utils.frames import ambiguous_code_mask, is_present
from price_panel.utils.progress_store import ProgressStore
from price_panel.utils.sql import sql_in_list, sql_quote

logger = logging.getLogger(__name__)


class CombinedRates(NamedTuple):
    drg: pd.DataFrame
    procedure: pd.DataFrame
    ambiguous: int


class PaginatedRemoteExtractor:
    """Resumable per-hospital extraction with a durable progress record"""

    RATE_TABLE = "rate"
    HOSPITAL_TABLE = "hospital"

    def __init__(self, config, client: Optional[DoltHubClient] = None,
                 store: Optional[ProgressStore] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.registry = config.registry
        self.client = client or DoltHubClient(config, sleep=sleep)
        self.store = store or ProgressStore(config.remote_progress_file, config.remote_partials_dir)
        self._sleep = sleep
        self.drg_column = ColumnMapping.REMOTE_DRG_COLUMN
        self.procedure_column = ColumnMapping.REMOTE_PROCEDURE_COLUMN
        self.key_column = ColumnMapping.REMOTE_KEY_COLUMN

    def code_filter(self) -> str:
        drg_in = sql_in_list(self.registry.codes(CODE_TYPE_DRG))
        cpt_in = sql_in_list(self.registry.codes(CODE_TYPE_PROCEDURE))
        return f"({self.drg_column} IN ({drg_in}) OR {self.procedure_column} IN ({cpt_in}))"

    def fetch_hospitals(self) -> pd.DataFrame:
        """Full export of the hospital table, renamed to the lake's hospital columns"""
        logger.info("Downloading hospital table...")
        hospitals = self.client.paginated_query(
            "*", self.HOSPITAL_TABLE,
            key_col=ColumnMapping.REMOTE_HOSPITAL_KEY,
            page_size=self.config.page_size,
        )
        logger.info(f"  Downloaded {len(hospitals)} hospital rows")
        return hospitals.rename(columns=ColumnMapping.REMOTE_HOSPITAL_RENAME)

    def fetch_hospital_rates(self, hospital_id: str) -> pd.DataFrame:
        return self.client.paginated_query(
            "*", self.RATE_TABLE,
            where_conditions=[f"hospital_id = {sql_quote(hospital_id)}", self.code_filter()],
            key_col=self.key_column,
            page_size=self.config.page_size,
        )

    def _log_progress(self, idx: int, total: int, hospital_id: str, report: ExtractionReport) -> None:
        elapsed = report.elapsed_minutes
        rate_per_min = idx / elapsed if elapsed > 0 else None
        eta = f"{(total - idx) / rate_per_min:.0f}" if rate_per_min else "?"
        logger.info(
            f"Hospital {idx}/{total} ({hospital_id}) | {report.total_rows} rows from "
            f"{len(report.succeeded)} hospitals | {elapsed:.1f} min elapsed | ETA ~{eta} min"
        )

    def extract(self, hospital_ids: Iterable) -> ExtractionReport:
        """Query every hospital not yet in the progress record"""
        ids = sorted({str(h) for h in hospital_ids if h is not None and str(h).strip()})
        logger.info(f"Loaded {len(ids)} hospital IDs")

        report = ExtractionReport("Per-hospital extraction")
        remaining = []
        for hospital_id in ids:
            if self.store.is_done(hospital_id):
                report.add(UnitResult(hospital_id, UnitStatus.SKIPPED))
            else:
                remaining.append(hospital_id)
        logger.info(f"Hospitals to process: {len(remaining)}")

        queries_before = self.client.queries_issued
        progress_bar = tqdm(remaining, desc="Hospitals", unit="hospital", disable=not self.config.show_progress)

        for idx, hospital_id in enumerate(progress_bar, start=1):
            if idx == 1 or idx % ExtractionConfig.PROGRESS_LOG_EVERY == 0:
                self._log_progress(idx, len(remaining), hospital_id, report)

            if self.store.has_partial(hospital_id):
                # Written by an earlier run that stopped before marking it done
                rows = len(pd.read_csv(self.store.partial_path(hospital_id), dtype=str, usecols=[0]))
                self.store.mark_done(hospital_id)
                report.add(UnitResult(hospital_id, UnitStatus.SKIPPED, rows, "recovered partial file"))
                continue

            try:
                rates = self.fetch_hospital_rates(hospital_id)
            except RemoteQueryError as e:
                report.add(UnitResult.failure(hospital_id, e))
                self._sleep(self.config.error_cooldown)
                continue

            self.store.record_success(hospital_id, rates)
            report.add(UnitResult.from_rows(hospital_id, len(rates)))
            self._sleep(self.config.sleep_empty if rates.empty else self.config.sleep_sec)

        report.queries_issued = self.client.queries_issued - queries_before
        report.log_summary()
        return report

    def combine_partials(self) -> CombinedRates:
        """Concatenate per-hospital files and split them by which code column is populated"""
        logger.info("Combining per-hospital files...")
        all_rates = self.store.read_partials()

        if all_rates.empty:
            logger.warning("  WARNING: No rate data downloaded")
            return CombinedRates(pd.DataFrame(), pd.DataFrame(), 0)

        logger.info(f"  Total rows: {len(all_rates):,}")
        has_drg = self._present(all_rates, self.drg_column)
        has_procedure = self._present(all_rates, self.procedure_column)

        both = ambiguous_code_mask(all_rates, self.drg_column, [self.procedure_column])
        if both.any():
            logger.warning(
                f"  {int(both.sum())} rows carry both {self.drg_column} and "
                f"{self.procedure_column}; excluded from both outputs"
            )

        drg_rates = all_rates[has_drg & ~has_procedure].reset_index(drop=True)
        procedure_rates = all_rates[has_procedure & ~has_drg].reset_index(drop=True)
        logger.info(f"  DRG rows: {len(drg_rates):,}")
        logger.info(f"  CPT rows: {len(procedure_rates):,}")

        return CombinedRates(drg_rates, procedure_rates, int(both.sum()))

    @staticmethod
    def _present(df: pd.DataFrame, column: str) -> pd.Series:
        if column not in df.columns:
            return pd.Series(False, index=df.index)
        return is_present(df[column])

    @staticmethod
    def to_raw_schema(rates: pd.DataFrame) -> pd.DataFrame:
        """Rename remote charge columns into the lake's raw charge schema"""
        renames = {k: v for k, v in ColumnMapping.REMOTE_RATE_RENAME.items() if k in rates.columns}
        return rates.rename(columns=renames)
