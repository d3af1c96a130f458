"""
Configuration settings for the price panel pipeline
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from price_panel.utils.code_registry import TargetCodeRegistry

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"


class APIConfig:
    DOLTHUB_BASE_URL = "https://www.dolthub.com/api/v1alpha1/dolthub/transparency-in-pricing/main"

    # Rate limiting
    REQUEST_TIMEOUT = 120
    RETRY_ATTEMPTS = 5
    BACKOFF_BASE = 2.0  # seconds, doubled on every retry
    PAGE_SIZE = 1000
    SLEEP_SEC = 0.3  # between API calls
    SLEEP_EMPTY = 0.05  # after a hospital with 0 rows
    ERROR_COOLDOWN = 2.0

    HEADERS = {"User-Agent": "price-panel-etl/1.0"}


class ExtractionConfig:
    LAKE_DB_NAME = "mrf_lake.duckdb"
    PARQUET_DIR_NAME = "parquet"
    PARTITION_TABLE = "standard_charge_details"
    PARTITION_KEY = "hospital_state"

    PROGRESS_LOG_EVERY = 100  # hospitals
    PARTITION_LOG_EVERY = 10  # partitions


class ColumnMapping:
    # Columns projected out of the lake partitions
    RAW_RATE_COLUMNS = [
        'hospital_id', 'description', 'ms_drg', 'cpt', 'hcpcs',
        'payer_name', 'plan_name',
        'standard_charge_dollar', 'gross_charge', 'discounted_cash', 'minimum', 'maximum',
        'methodology', 'setting', 'billing_class',
        'hospital_name', 'hospital_state',
    ]

    # rate_category -> raw charge column
    CHARGE_COLUMNS = {
        'negotiated': 'standard_charge_dollar',
        'gross': 'gross_charge',
        'cash': 'discounted_cash',
        'min': 'minimum',
        'max': 'maximum',
    }

    DRG_COLUMN = 'ms_drg'
    # Alternative procedure code columns, first non-null wins
    PROCEDURE_COLUMNS = ['cpt', 'hcpcs', 'hcpcs_cpt']

    OBSERVATION_COLUMNS = [
        'hospital_id', 'description', 'drg_code', 'procedure_code',
        'payer_name', 'plan_name', 'charge_amount', 'rate_category',
        'setting', 'billing_class',
    ]

    # Remote rate table -> raw charge schema
    REMOTE_RATE_RENAME = {
        'negotiated_dollar': 'standard_charge_dollar',
        'min': 'minimum',
        'max': 'maximum',
    }
    REMOTE_DRG_COLUMN = 'ms_drg'
    REMOTE_PROCEDURE_COLUMN = 'hcpcs_cpt'
    REMOTE_KEY_COLUMN = 'row_id'
    REMOTE_HOSPITAL_KEY = 'id'

    # Remote hospital table -> lake hospital schema
    REMOTE_HOSPITAL_RENAME = {
        'id': 'hospital_id',
        'name': 'hospital_name',
        'address': 'hospital_address',
        'city': 'hospital_city',
        'state': 'hospital_state',
    }

    CROSSWALK_RENAME = {
        'ein': 'tax_id',
        'sysid': 'system_id',
    }


@dataclass
class PipelineConfig:
    """Run configuration, built once at startup and handed to every component"""

    data_dir: Path = DATA_DIR
    lake_dir: Optional[Path] = None
    crosswalk_path: Optional[Path] = None
    registry: TargetCodeRegistry = field(default_factory=TargetCodeRegistry.default)

    api_base_url: str = APIConfig.DOLTHUB_BASE_URL
    request_timeout: float = APIConfig.REQUEST_TIMEOUT
    retry_attempts: int = APIConfig.RETRY_ATTEMPTS
    backoff_base: float = APIConfig.BACKOFF_BASE
    page_size: int = APIConfig.PAGE_SIZE
    sleep_sec: float = APIConfig.SLEEP_SEC
    sleep_empty: float = APIConfig.SLEEP_EMPTY
    error_cooldown: float = APIConfig.ERROR_COOLDOWN

    partition_table: str = ExtractionConfig.PARTITION_TABLE
    partition_key: str = ExtractionConfig.PARTITION_KEY
    output_format: str = "csv"
    show_progress: bool = True

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.lake_dir is None:
            self.lake_dir = self.data_dir / "input" / "oria"
        self.lake_dir = Path(self.lake_dir)
        if self.crosswalk_path is None:
            self.crosswalk_path = self.data_dir / "input" / "npi-ccn-crosswalk-enriched.csv"
        self.crosswalk_path = Path(self.crosswalk_path)
        if self.output_format not in ("csv", "parquet"):
            raise ValueError(f"Unsupported output format: {self.output_format}")
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        env = {
            'data_dir': os.getenv("PRICE_PANEL_DATA_DIR"),
            'lake_dir': os.getenv("PRICE_PANEL_LAKE_DIR"),
            'crosswalk_path': os.getenv("PRICE_PANEL_CROSSWALK"),
            'api_base_url': os.getenv("DOLTHUB_API_URL"),
        }
        kwargs = {k: v for k, v in env.items() if v}
        codes_file = os.getenv("PRICE_PANEL_TARGET_CODES")
        if codes_file:
            kwargs['registry'] = TargetCodeRegistry.from_csv(Path(codes_file))
        kwargs.update(overrides)
        return cls(**kwargs)

    # Lake inputs
    @property
    def lake_db(self) -> Path:
        return self.lake_dir / ExtractionConfig.LAKE_DB_NAME

    @property
    def parquet_dir(self) -> Path:
        return self.lake_dir / ExtractionConfig.PARQUET_DIR_NAME

    # Remote extraction workspace
    @property
    def remote_dir(self) -> Path:
        return self.data_dir / "input" / "dolthub"

    @property
    def remote_partials_dir(self) -> Path:
        return self.remote_dir / "rates-by-hospital"

    @property
    def remote_progress_file(self) -> Path:
        return self.remote_dir / "rates-progress.txt"

    # Outputs
    @property
    def output_dir(self) -> Path:
        return self.data_dir / "output"

    def extract_files(self, source: str) -> Dict[str, Path]:
        """Hospital and rate extract files for one source ('lake' or 'remote')"""
        base = self.output_dir if source == "lake" else self.remote_dir
        prefix = "oria-" if source == "lake" else ""
        return {
            'hospitals': base / f"{prefix}hospital.csv",
            'drg': base / f"{prefix}rates-drg.csv",
            'procedure': base / f"{prefix}rates-cpt.csv",
        }

    @property
    def hospitals_file(self) -> Path:
        return self.output_dir / "hospitals.csv"

    @property
    def rates_clean_file(self) -> Path:
        return self.output_dir / "rates-clean.csv"

    @property
    def rates_payer_file(self) -> Path:
        return self.output_dir / "rates-payer.csv"

    @property
    def panel_file(self) -> Path:
        return self.output_dir / "price-panel.csv"

    def ensure_directories(self) -> List[Path]:
        created = []
        for dir_path in [self.output_dir, self.remote_dir, self.remote_partials_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)
            created.append(dir_path)
        return created
