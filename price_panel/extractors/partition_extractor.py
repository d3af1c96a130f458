"""
Extract hospital metadata and target-code rate rows from the partitioned parquet lake
"""
import duckdb
import pandas as pd
import logging
from pathlib import Path
from typing import List, Optional, Tuple
from tqdm import tqdm

from config.settings import ColumnMapping, ExtractionConfig
from price_panel.utils.sql import sql_in_list, sql_quote
from price_panel.utils.code_registry import CODE_TYPE_DRG, CODE_TYPE_PROCEDURE
from price_panel.utils.extraction_report import ExtractionReport, UnitResult
from price_panel.utils.frames import ambiguous_code_mask

logger = logging.getLogger(__name__)


class PartitionedScanExtractor:
    """Run one filtered projection query per Hive partition and concatenate the results"""

    def __init__(self, config, connection: Optional[duckdb.DuckDBPyConnection] = None):
        self.config = config
        self.registry = config.registry
        self.partition_root = config.parquet_dir / config.partition_table
        self.partition_key = config.partition_key
        self.columns = [c for c in ColumnMapping.RAW_RATE_COLUMNS if c != self.partition_key]
        self.conn = connection or duckdb.connect()

    def check_sources(self) -> None:
        if not self.config.parquet_dir.is_dir():
            raise FileNotFoundError(
                f"Parquet directory not found: {self.config.parquet_dir}. "
                f"Point PRICE_PANEL_LAKE_DIR at the lake data directory."
            )
        if not self.partition_root.is_dir():
            raise FileNotFoundError(f"Partitioned table not found: {self.partition_root}")

    def discover_partitions(self) -> List[str]:
        """Partition values from <table>/<key>=<value> directory names"""
        self.check_sources()
        prefix = f"{self.partition_key}="
        partitions = sorted(
            d.name[len(prefix):]
            for d in self.partition_root.iterdir()
            if d.is_dir() and d.name.startswith(prefix) and len(d.name) > len(prefix)
        )
        logger.info(f"Available partitions: {len(partitions)}")
        return partitions

    def drg_filter(self) -> str:
        drg_in = sql_in_list(self.registry.codes(CODE_TYPE_DRG))
        return f"CAST(ms_drg AS VARCHAR) IN ({drg_in})"

    def procedure_filter(self) -> str:
        cpt_in = sql_in_list(self.registry.codes(CODE_TYPE_PROCEDURE))
        return f"(CAST(cpt AS VARCHAR) IN ({cpt_in}) OR CAST(hcpcs AS VARCHAR) IN ({cpt_in}))"

    def _partition_glob(self, partition: str) -> str:
        path = self.partition_root / f"{self.partition_key}={partition}" / "*.parquet"
        return path.as_posix()

    def query_partition(self, partition: str, code_filter: str) -> pd.DataFrame:
        sql = f"""
        SELECT {', '.join(self.columns)}, {sql_quote(partition)} AS {self.partition_key}
        FROM read_parquet({sql_quote(self._partition_glob(partition))}, hive_partitioning = false, union_by_name = true)
        WHERE {code_filter}
        """
        return self.conn.execute(sql).df()

    def extract(self, code_filter: str, label: str,
                partitions: Optional[List[str]] = None) -> Tuple[pd.DataFrame, ExtractionReport]:
        """Scan every partition; a failing partition is recorded and skipped"""
        if partitions is None:
            partitions = self.discover_partitions()

        logger.info(f"Extracting {label} across {len(partitions)} partitions...")
        report = ExtractionReport(label)
        parts = []

        progress_bar = tqdm(partitions, desc=label, unit="partition", disable=not self.config.show_progress)
        for i, partition in enumerate(progress_bar, start=1):
            if i == 1 or i % ExtractionConfig.PARTITION_LOG_EVERY == 0:
                logger.info(f"    Partition {i}/{len(partitions)} ({partition})")

            report.queries_issued += 1
            try:
                result = self.query_partition(partition, code_filter)
            except duckdb.Error as e:
                report.add(UnitResult.failure(partition, e))
                continue

            report.add(UnitResult.from_rows(partition, len(result)))
            if not result.empty:
                parts.append(result)

        if not parts:
            report.log_summary()
            return pd.DataFrame(columns=self.columns + [self.partition_key]), report

        rows = pd.concat(parts, ignore_index=True)
        both = ambiguous_code_mask(rows, ColumnMapping.DRG_COLUMN, ColumnMapping.PROCEDURE_COLUMNS)
        report.ambiguous_rows = int(both.sum())
        if report.ambiguous_rows:
            logger.warning(
                f"  {report.ambiguous_rows} rows carry both a DRG and a procedure code; "
                f"excluded from the {label} extract"
            )
            rows = rows[~both].reset_index(drop=True)

        report.log_summary()
        return rows, report

    def extract_drg_rates(self) -> Tuple[pd.DataFrame, ExtractionReport]:
        return self.extract(self.drg_filter(), "DRG rates")

    def extract_procedure_rates(self) -> Tuple[pd.DataFrame, ExtractionReport]:
        return self.extract(self.procedure_filter(), "CPT/HCPCS rates")


class LakeHospitalExtractor:
    """Hospital metadata from the lake's DuckDB catalog, with EIN parsed from MRF filenames"""

    EIN_PATTERN = r"^(\d{9})"

    def __init__(self, config):
        self.db_path: Path = config.lake_db

    def extract(self) -> pd.DataFrame:
        if not self.db_path.exists():
            raise FileNotFoundError(f"Lake database not found: {self.db_path}")

        logger.info("Extracting hospital metadata...")
        conn = duckdb.connect(str(self.db_path), read_only=True)
        try:
            hosp = conn.execute("""
                SELECT hospital_id, hospital_name, hospital_address, hospital_city,
                       hospital_state, total_charges_count, status
                FROM hospitals
                WHERE status = 'completed'
            """).df()
            mrf = conn.execute("""
                SELECT hospital_id, filename FROM mrf_metadata WHERE filename IS NOT NULL
            """).df()
        finally:
            conn.close()

        mrf['ein'] = mrf['filename'].astype(str).str.extract(self.EIN_PATTERN, expand=False)
        mrf = (mrf.dropna(subset=['ein'])[['hospital_id', 'ein']]
               .drop_duplicates(subset='hospital_id'))

        hosp = hosp.merge(mrf, on='hospital_id', how='left')

        logger.info(f"  {len(hosp)} hospitals with data (status = completed)")
        logger.info(f"  EIN extracted: {hosp['ein'].notna().sum()} / {len(hosp)}")
        return hosp
