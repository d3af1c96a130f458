"""
Durable progress record for resumable per-hospital extraction

Layout: an append-only text file with one finished id per line, plus one
partial CSV per id that returned rows. An id is only appended after its
partial file has been written, flushed and atomically renamed into place.
"""
import hashlib
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Set

import pandas as pd

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ProgressStore:
    def __init__(self, progress_file: Path, partials_dir: Path):
        self.progress_file = Path(progress_file)
        self.partials_dir = Path(partials_dir)
        self.partials_dir.mkdir(parents=True, exist_ok=True)
        self.progress_file.parent.mkdir(parents=True, exist_ok=True)
        self._done = self._load()

    def _load(self) -> Set[str]:
        if not self.progress_file.exists():
            return set()
        with open(self.progress_file, "r") as f:
            done = {line.strip() for line in f if line.strip()}
        if done:
            logger.info(f"Resuming: {len(done)} ids already processed")
        return done

    @property
    def done(self) -> Set[str]:
        return set(self._done)

    def is_done(self, unit_id: str) -> bool:
        return str(unit_id) in self._done

    def partial_path(self, unit_id: str) -> Path:
        # sanitized names alone can collide (a/b vs a_b)
        unit_id = str(unit_id)
        digest = hashlib.sha1(unit_id.encode("utf-8")).hexdigest()[:10]
        return self.partials_dir / f"{_UNSAFE_CHARS.sub('_', unit_id)}-{digest}.csv"

    def has_partial(self, unit_id: str) -> bool:
        return self.partial_path(unit_id).exists()

    def write_partial(self, unit_id: str, df: pd.DataFrame) -> Path:
        path = self.partial_path(unit_id)
        tmp_path = path.with_suffix(".csv.tmp")
        with open(tmp_path, "w", newline="") as f:
            df.to_csv(f, index=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        return path

    def mark_done(self, unit_id: str) -> None:
        unit_id = str(unit_id)
        if "\n" in unit_id:
            raise ValueError(f"Invalid id for progress record: {unit_id!r}")
        with open(self.progress_file, "a") as f:
            f.write(f"{unit_id}\n")
            f.flush()
            os.fsync(f.fileno())
        self._done.add(unit_id)

    def record_success(self, unit_id: str, rows: Optional[pd.DataFrame]) -> Optional[Path]:
        """Persist the partial result (if any rows), then mark the id done"""
        path = None
        if rows is not None and not rows.empty:
            path = self.write_partial(unit_id, rows)
        self.mark_done(unit_id)
        return path

    def partial_files(self) -> List[Path]:
        return sorted(self.partials_dir.glob("*.csv"))

    def read_partials(self) -> pd.DataFrame:
        files = self.partial_files()
        logger.info(f"  Found {len(files)} partial files")
        if not files:
            return pd.DataFrame()
        return pd.concat(
            [pd.read_csv(f, dtype=str, keep_default_na=False, na_values=[""]) for f in files],
            ignore_index=True,
        )
