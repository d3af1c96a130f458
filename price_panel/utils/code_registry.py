"""
Immutable registry of target billing codes
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

CODE_TYPE_DRG = "MS-DRG"
CODE_TYPE_PROCEDURE = "CPT/HCPCS"
CODE_TYPES = (CODE_TYPE_DRG, CODE_TYPE_PROCEDURE)


@dataclass(frozen=True)
class TargetCode:
    code: str
    code_type: str
    label: str


class TargetCodeRegistry:
    """Fixed set of (code, code_type, label) entries the pipeline is restricted to"""

    def __init__(self, entries: Iterable[TargetCode]):
        seen = set()
        ordered = []
        for entry in entries:
            if entry.code_type not in CODE_TYPES:
                raise ValueError(f"Unknown code_type {entry.code_type!r} for code {entry.code}")
            key = (entry.code, entry.code_type)
            if key in seen:
                raise ValueError(f"Duplicate target code {entry.code} ({entry.code_type})")
            seen.add(key)
            ordered.append(entry)
        self._entries: Tuple[TargetCode, ...] = tuple(ordered)

    @classmethod
    def default(cls) -> "TargetCodeRegistry":
        """Registry built from config/code_lists.py"""
        from config.code_lists import TARGET_CPTS, TARGET_DRGS

        entries = [TargetCode(code, CODE_TYPE_DRG, label) for code, label in TARGET_DRGS]
        entries += [TargetCode(code, CODE_TYPE_PROCEDURE, label) for code, label in TARGET_CPTS]
        registry = cls(entries)
        logger.info(
            f"Code lists loaded: {len(registry.codes(CODE_TYPE_DRG))} DRGs, "
            f"{len(registry.codes(CODE_TYPE_PROCEDURE))} CPTs -> {len(registry)} total"
        )
        return registry

    @classmethod
    def from_csv(cls, path: Path) -> "TargetCodeRegistry":
        """Load a registry from a CSV with code, code_type and label columns"""
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        missing_cols = {"code", "code_type", "label"} - set(df.columns)
        if missing_cols:
            raise ValueError(f"Target code file {path} is missing columns: {sorted(missing_cols)}")
        return cls(
            TargetCode(row.code.strip(), row.code_type.strip(), row.label.strip())
            for row in df.itertuples(index=False)
        )

    def __iter__(self) -> Iterator[TargetCode]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def codes(self, code_type: Optional[str] = None) -> List[str]:
        """Codes in registry order, optionally restricted to one code type"""
        return [e.code for e in self._entries if code_type is None or e.code_type == code_type]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(e.code, e.code_type, e.label) for e in self._entries],
            columns=["code", "code_type", "label"],
        )
