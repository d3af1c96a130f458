"""
Shared fixtures for the price panel test suite
"""
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import duckdb
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from config.settings import ColumnMapping, PipelineConfig
from price_panel.utils.api_clients import DoltHubClient, RemoteQueryError
from price_panel.utils.code_registry import (
    CODE_TYPE_DRG, CODE_TYPE_PROCEDURE, TargetCode, TargetCodeRegistry,
)

CHARGE_FIELDS = ['standard_charge_dollar', 'gross_charge', 'discounted_cash', 'minimum', 'maximum']


def raw_row(**overrides) -> Dict:
    """One raw charge row with every charge column empty"""
    row = {col: None for col in ColumnMapping.RAW_RATE_COLUMNS}
    row.update({'hospital_id': 'H1', 'description': 'Joint replacement', 'setting': 'inpatient',
                'billing_class': 'facility'})
    row.update(overrides)
    return row


def raw_frame(rows: Iterable[Dict]) -> pd.DataFrame:
    return pd.DataFrame(list(rows))


def write_partition(root: Path, state: str, rows: List[Dict], name: str = "part-0.parquet") -> Path:
    """Write raw charge rows as one parquet file under hospital_state=<state>"""
    fields = [
        pa.field(col, pa.float64() if col in CHARGE_FIELDS else pa.string())
        for col in ColumnMapping.RAW_RATE_COLUMNS if col != 'hospital_state'
    ]
    schema = pa.schema(fields)
    df = raw_frame(rows)[[f.name for f in fields]]
    table = pa.Table.from_pandas(df, schema=schema, preserve_index=False)

    partition_dir = root / "parquet" / "standard_charge_details" / f"hospital_state={state}"
    partition_dir.mkdir(parents=True, exist_ok=True)
    path = partition_dir / name
    pq.write_table(table, path)
    return path


def write_corrupt_partition(root: Path, state: str) -> Path:
    partition_dir = root / "parquet" / "standard_charge_details" / f"hospital_state={state}"
    partition_dir.mkdir(parents=True, exist_ok=True)
    path = partition_dir / "part-0.parquet"
    path.write_bytes(b"this is not a parquet file")
    return path


def write_lake_catalog(root: Path, hospitals: List[Dict], mrf_files: List[Dict]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    db_path = root / "mrf_lake.duckdb"
    conn = duckdb.connect(str(db_path))
    try:
        conn.execute("""
            CREATE TABLE hospitals (
                hospital_id VARCHAR, hospital_name VARCHAR, hospital_address VARCHAR,
                hospital_city VARCHAR, hospital_state VARCHAR, total_charges_count BIGINT,
                status VARCHAR
            )
        """)
        conn.execute("CREATE TABLE mrf_metadata (hospital_id VARCHAR, filename VARCHAR)")
        for h in hospitals:
            conn.execute(
                "INSERT INTO hospitals VALUES (?, ?, ?, ?, ?, ?, ?)",
                [h['hospital_id'], h['hospital_name'], h.get('hospital_address'),
                 h.get('hospital_city'), h.get('hospital_state'), h.get('total_charges_count', 0),
                 h.get('status', 'completed')],
            )
        for m in mrf_files:
            conn.execute("INSERT INTO mrf_metadata VALUES (?, ?)", [m['hospital_id'], m['filename']])
    finally:
        conn.close()
    return db_path


class FakeDoltHub(DoltHubClient):
    """In-memory stand-in for the remote SQL API

    Understands just enough of the generated SQL: the table name, a
    hospital_id equality, the keyset condition and LIMIT. Rows stored here are
    assumed to already match the code filter.
    """

    def __init__(self, config, rates: Optional[Dict[str, List[Dict]]] = None,
                 hospitals: Optional[List[Dict]] = None, failing: Iterable[str] = ()):
        super().__init__(config, sleep=lambda seconds: None)
        self.rates = rates or {}
        self.hospitals = hospitals or []
        self.failing = set(failing)
        self.sql_log: List[str] = []

    def query(self, sql: str) -> pd.DataFrame:
        self.queries_issued += 1
        self.sql_log.append(sql)

        table = re.search(r"FROM `(\w+)`", sql).group(1)
        limit = int(re.search(r"LIMIT (\d+)", sql).group(1))

        if table == "hospital":
            rows, key = self.hospitals, "id"
        else:
            hospital_id = re.search(r"hospital_id = '([^']*)'", sql).group(1)
            if hospital_id in self.failing:
                raise RemoteQueryError(f"timeout for {hospital_id}")
            rows, key = self.rates.get(hospital_id, []), "row_id"

        after = re.search(rf"{key} > '([^']*)'", sql)
        rows = sorted(rows, key=lambda r: r[key])
        if after:
            rows = [r for r in rows if r[key] > after.group(1)]
        return self._rows_to_frame(rows[:limit])


@pytest.fixture
def registry():
    return TargetCodeRegistry([
        TargetCode("470", CODE_TYPE_DRG, "Major hip/knee joint replacement"),
        TargetCode("999", CODE_TYPE_DRG, "Code with no data"),
        TargetCode("99213", CODE_TYPE_PROCEDURE, "Office visit, established patient (level 3)"),
    ])


@pytest.fixture
def config(tmp_path, registry):
    return PipelineConfig(
        data_dir=tmp_path / "data",
        lake_dir=tmp_path / "lake",
        crosswalk_path=tmp_path / "crosswalk.csv",
        registry=registry,
        page_size=2,
        sleep_sec=0,
        sleep_empty=0,
        error_cooldown=0,
        backoff_base=0,
        show_progress=False,
    )
