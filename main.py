"""
Hospital price panel pipeline

Build order: extract (lake or remote) -> hospitals -> rate cleaning ->
payer harmonization -> price panel.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from config.settings import PipelineConfig
from price_panel.extractors.partition_extractor import LakeHospitalExtractor, PartitionedScanExtractor
from price_panel.extractors.remote_extractor import PaginatedRemoteExtractor
from price_panel.loaders.table_loader import TableLoader
from price_panel.transformers.hospital_builder import HospitalBuilder
from price_panel.transformers.panel_assembler import PanelAssembler
from price_panel.transformers.payer_classifier import PayerClassifier
from price_panel.transformers.rate_cleaner import CleaningResult, RateCleaner
from price_panel.transformers.rate_unpivoter import RateUnpivoter
from price_panel.utils.extraction_report import IncompleteExtractionError

logger = logging.getLogger(__name__)

SOURCES = ("lake", "remote")


def configure_logging(level: str = "INFO", log_file: Optional[str] = "price_panel.log") -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


class HospitalPricePanelETL:
    """Main pipeline orchestrator"""

    def __init__(self, config: PipelineConfig, source: str = "lake", force_extract: bool = False,
                 remote_extractor: Optional[PaginatedRemoteExtractor] = None):
        if source not in SOURCES:
            raise ValueError(f"Unknown source {source!r}; expected one of {SOURCES}")
        self.config = config
        self.source = source
        self.force_extract = force_extract
        self._remote_extractor = remote_extractor

        self.loader = TableLoader(config.output_format)
        self.unpivoter = RateUnpivoter()
        self.cleaner = RateCleaner(config.registry)
        self.payer_classifier = PayerClassifier()
        self.hospital_builder = HospitalBuilder(config.crosswalk_path)
        self.panel_assembler = PanelAssembler()

        logger.info(f"Initialized price panel pipeline (source: {source})")

    def run_full_pipeline(self) -> pd.DataFrame:
        """Execute the complete pipeline in build order"""
        logger.info("Starting price panel pipeline...")
        self.config.ensure_directories()

        logger.info("=== EXTRACTION PHASE ===")
        files = self.extract()

        logger.info("=== HOSPITAL PHASE ===")
        hospitals = self.build_hospitals(files)

        logger.info("=== RATE CLEANING PHASE ===")
        cleaning = self.clean_rates(files)

        logger.info("=== PAYER HARMONIZATION PHASE ===")
        classified = self.payer_classifier.classify_rates(cleaning.rates)
        self.loader.save_dataframe(classified, self.config.rates_payer_file)

        logger.info("=== PANEL PHASE ===")
        panel = self.panel_assembler.assemble(classified, hospitals)
        self.loader.save_dataframe(panel, self.config.panel_file)

        logger.info(
            f"Build complete: {len(panel):,} panel rows, {panel['hospital_id'].nunique()} hospitals, "
            f"{panel['code'].nunique()} / {len(self.config.registry)} target codes"
        )
        return panel

    # Extraction -----------------------------------------------------------

    def extract(self) -> Dict[str, Path]:
        files = self.config.extract_files(self.source)
        if self.source == "lake":
            if not self.force_extract and all(p.exists() for p in files.values()):
                logger.info("Lake extracts already exist, skipping extraction.")
                return files
            self._extract_lake(files)
        else:
            # Resumable: hospitals already in the progress record cost no queries
            self._extract_remote(files)

        TableLoader.describe_outputs(files['drg'].parent)
        return files

    def _needs(self, path: Path) -> bool:
        if path.exists() and not self.force_extract:
            logger.info(f"Already exists, skipping: {path}")
            return False
        return True

    def _write_rates(self, rates: pd.DataFrame, path: Path, label: str) -> None:
        if rates.empty:
            logger.warning(f"  WARNING: No {label} rate data found")
        self.loader.save_dataframe(rates, path, output_format="csv")

    def _extract_lake(self, files: Dict[str, Path]) -> None:
        if self._needs(files['hospitals']):
            hospitals = LakeHospitalExtractor(self.config).extract()
            self.loader.save_dataframe(hospitals, files['hospitals'], output_format="csv")

        extractor = PartitionedScanExtractor(self.config)
        steps = [
            ('drg', "DRG", extractor.extract_drg_rates),
            ('procedure', "CPT/HCPCS", extractor.extract_procedure_rates),
        ]
        incomplete = []
        for key, label, extract in steps:
            if not self._needs(files[key]):
                continue
            raw, report = extract()
            if not report.complete:
                logger.error(
                    f"  {label} extract incomplete ({len(report.failed)} failed partitions); "
                    f"not saved so the next run scans again"
                )
                incomplete.append(report)
                continue
            rates = self.unpivoter.unpivot(raw)
            logger.info(f"  Total {label} rows: {len(rates):,}")
            self._write_rates(rates, files[key], label)

        if incomplete:
            detail = "; ".join(
                f"{r.label}: {', '.join(u.unit for u in r.failed) or 'no partitions scanned'}"
                for r in incomplete
            )
            raise IncompleteExtractionError(f"Lake extraction incomplete ({detail})")

    def _extract_remote(self, files: Dict[str, Path]) -> None:
        extractor = self._remote_extractor or PaginatedRemoteExtractor(self.config)

        if self._needs(files['hospitals']):
            hospitals = extractor.fetch_hospitals()
            self.loader.save_dataframe(hospitals, files['hospitals'], output_format="csv")
        else:
            hospitals = self.loader.read_table(files['hospitals'])

        report = extractor.extract(hospitals['hospital_id'])
        combined = extractor.combine_partials()

        for key, label, raw in (('drg', "DRG", combined.drg), ('procedure', "CPT/HCPCS", combined.procedure)):
            rates = self.unpivoter.unpivot(extractor.to_raw_schema(raw))
            self._write_rates(rates, files[key], label)

        if report.failed:
            logger.warning(
                f"{len(report.failed)} hospitals failed and will be retried on the next run"
            )

    # Downstream stages ----------------------------------------------------

    def build_hospitals(self, files: Dict[str, Path]) -> pd.DataFrame:
        raw = self.loader.read_table(files['hospitals'])
        rate_ids = pd.concat([
            self.loader.read_table(files['drg'], columns=['hospital_id'])['hospital_id'],
            self.loader.read_table(files['procedure'], columns=['hospital_id'])['hospital_id'],
        ], ignore_index=True)

        crosswalk = self.hospital_builder.load_crosswalk()
        hospitals = self.hospital_builder.build(raw, crosswalk, rate_ids.dropna().unique())
        self.loader.save_dataframe(hospitals, self.config.hospitals_file)
        return hospitals

    def clean_rates(self, files: Dict[str, Path]) -> CleaningResult:
        result = self.cleaner.clean(
            self.loader.read_table(files['drg']),
            self.loader.read_table(files['procedure']),
        )
        self.loader.save_dataframe(result.rates, self.config.rates_clean_file)
        return result


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Build the hospital price transparency panel')
    parser.add_argument('--source', choices=SOURCES, default='lake',
                        help='Extract from the local parquet lake or the remote SQL API')
    parser.add_argument('--force-extract', action='store_true',
                        help='Re-run extraction even if extract files exist')
    parser.add_argument('--log-level', default='INFO', help='Logging level')
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        config = PipelineConfig.from_env()
        pipeline = HospitalPricePanelETL(config, source=args.source, force_extract=args.force_extract)
        pipeline.run_full_pipeline()

    except KeyboardInterrupt:
        logger.info("Pipeline interrupted by user; extraction progress is saved")
    except Exception as e:
        logger.error(f"Pipeline failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
