"""
End-to-end pipeline runs against a small lake and a fake remote API
"""
import shutil

import pandas as pd
import pytest

from main import HospitalPricePanelETL
from price_panel.extractors.remote_extractor import PaginatedRemoteExtractor
from price_panel.utils.extraction_report import IncompleteExtractionError

from conftest import FakeDoltHub, raw_row, write_corrupt_partition, write_lake_catalog, write_partition


@pytest.fixture
def crosswalk(config):
    pd.DataFrame({
        'ein': ['123456789', '987654321'],
        'ccn': ['450001', '050002'],
        'aha_id': ['6740001', '6740002'],
        'sysid': ['S1', 'S2'],
    }).to_csv(config.crosswalk_path, index=False)
    return config.crosswalk_path


@pytest.fixture
def lake(config):
    root = config.lake_dir
    write_partition(root, "TX", [
        raw_row(hospital_id='H1', ms_drg='470', payer_name='Blue Cross of Texas',
                standard_charge_dollar=5000.0, gross_charge=12000.0, discounted_cash=0.0),
        raw_row(hospital_id='H1', cpt='99213', description='Office visit', gross_charge=150.0),
        raw_row(hospital_id='H1', ms_drg='871', description='Sepsis', gross_charge=30000.0),
    ])
    write_partition(root, "CA", [
        raw_row(hospital_id='H2', ms_drg='470', payer_name='Aetna', standard_charge_dollar=6000.0),
        raw_row(hospital_id='H2', hcpcs='99213', description='Office visit', gross_charge=175.0),
    ])
    write_lake_catalog(root, hospitals=[
        {'hospital_id': 'H1', 'hospital_name': 'General', 'hospital_state': 'TX'},
        {'hospital_id': 'H2', 'hospital_name': 'Mercy', 'hospital_state': 'CA'},
    ], mrf_files=[
        {'hospital_id': 'H1', 'filename': '123456789_general_standardcharges.json'},
        {'hospital_id': 'H2', 'filename': '987654321-mercy.csv'},
    ])
    return root


def test_unknown_source_rejected(config):
    with pytest.raises(ValueError):
        HospitalPricePanelETL(config, source="ftp")


def test_lake_pipeline_end_to_end(config, lake, crosswalk):
    panel = HospitalPricePanelETL(config, source="lake").run_full_pipeline()

    assert len(panel) == 5
    assert set(panel['code']) == {'470', '99213'}
    assert (panel['charge_amount'] > 0).all()

    negotiated = panel[panel['rate_category'] == 'negotiated'].set_index('hospital_id')
    assert negotiated.loc['H1', 'payer_category'] == 'BCBS'
    assert negotiated.loc['H1', 'charge_amount'] == 5000.0
    assert negotiated.loc['H2', 'payer_category'] == 'Aetna'

    h1_drg = panel[(panel['hospital_id'] == 'H1') & (panel['code'] == '470')]
    assert sorted(h1_drg['rate_category']) == ['gross', 'negotiated']
    assert set(panel.loc[panel['hospital_id'] == 'H1', 'ccn']) == {'450001'}

    for path in [config.panel_file, config.rates_payer_file, config.rates_clean_file, config.hospitals_file]:
        assert path.exists()
    written = pd.read_csv(config.panel_file, dtype=str)
    assert len(written) == 5


def test_lake_extracts_reused_on_rerun(config, lake, crosswalk):
    HospitalPricePanelETL(config, source="lake").run_full_pipeline()
    shutil.rmtree(config.parquet_dir)

    panel = HospitalPricePanelETL(config, source="lake").run_full_pipeline()

    assert len(panel) == 5
    with pytest.raises(FileNotFoundError):
        HospitalPricePanelETL(config, source="lake", force_extract=True).run_full_pipeline()


def test_missing_crosswalk_fails(config, lake):
    with pytest.raises(FileNotFoundError, match="Crosswalk"):
        HospitalPricePanelETL(config, source="lake").run_full_pipeline()


def test_lake_row_with_both_codes_not_duplicated(config, lake, crosswalk):
    write_partition(config.lake_dir, "WA", [
        raw_row(hospital_id='H1', ms_drg='470', cpt='99213', description='Mixed',
                payer_name='Aetna', standard_charge_dollar=7777.0, gross_charge=77777.0),
    ])

    panel = HospitalPricePanelETL(config, source="lake").run_full_pipeline()

    assert len(panel) == 5
    assert not panel['charge_amount'].isin([7777.0, 77777.0]).any()


def test_failed_partition_blocks_saving_until_rerun_succeeds(config, lake, crosswalk):
    write_corrupt_partition(config.lake_dir, "ZZ")
    files = config.extract_files('lake')

    with pytest.raises(IncompleteExtractionError, match="ZZ"):
        HospitalPricePanelETL(config, source="lake").run_full_pipeline()

    assert not files['drg'].exists()
    assert not files['procedure'].exists()

    write_partition(config.lake_dir, "ZZ", [
        raw_row(hospital_id='H1', ms_drg='470', description='Revision', gross_charge=20000.0),
    ])
    panel = HospitalPricePanelETL(config, source="lake").run_full_pipeline()

    assert len(panel) == 6
    assert 20000.0 in set(panel['charge_amount'])


def remote_rate(row_id, **fields):
    row = {
        'hospital_id': '1', 'row_id': row_id, 'description': 'svc', 'ms_drg': None, 'hcpcs_cpt': None,
        'payer_name': None, 'plan_name': None, 'negotiated_dollar': None, 'gross_charge': None,
        'discounted_cash': None, 'min': None, 'max': None, 'setting': 'inpatient',
        'billing_class': 'facility',
    }
    row.update(fields)
    return row


@pytest.fixture
def fake_api(config):
    return FakeDoltHub(
        config,
        hospitals=[
            {'id': '1', 'name': 'General', 'address': '1 Main', 'city': 'Austin', 'state': 'TX',
             'ein': '123456789'},
            {'id': '2', 'name': 'Quiet', 'address': '9 Pine', 'city': 'Reno', 'state': 'NV', 'ein': None},
        ],
        rates={
            '1': [
                remote_rate('001', ms_drg='470', payer_name='UnitedHealthcare', negotiated_dollar='5000'),
                remote_rate('002', hcpcs_cpt='99213', gross_charge='150'),
                remote_rate('003', ms_drg='470', hcpcs_cpt='99213', gross_charge='99'),
            ],
        },
    )


def test_remote_pipeline_end_to_end(config, crosswalk, fake_api):
    extractor = PaginatedRemoteExtractor(config, client=fake_api, sleep=lambda seconds: None)

    panel = HospitalPricePanelETL(config, source="remote", remote_extractor=extractor).run_full_pipeline()

    assert len(panel) == 2
    rows = panel.set_index('code')
    assert rows.loc['470', 'payer_category'] == 'UHC'
    assert rows.loc['470', 'rate_category'] == 'negotiated'
    assert rows.loc['99213', 'charge_amount'] == 150.0
    assert set(panel['ccn']) == {'450001'}

    hospitals = pd.read_csv(config.hospitals_file, dtype=str).set_index('hospital_id')
    assert hospitals.loc['1', 'has_rate_data'] == 'True'
    assert hospitals.loc['2', 'has_rate_data'] == 'False'
    assert extractor.store.done == {'1', '2'}


def test_remote_rerun_issues_no_queries(config, crosswalk, fake_api):
    first = PaginatedRemoteExtractor(config, client=fake_api, sleep=lambda seconds: None)
    HospitalPricePanelETL(config, source="remote", remote_extractor=first).run_full_pipeline()

    fake_api.sql_log.clear()
    second = PaginatedRemoteExtractor(config, client=fake_api, sleep=lambda seconds: None)
    panel = HospitalPricePanelETL(config, source="remote", remote_extractor=second).run_full_pipeline()

    # hospital table and every hospital's rates come from disk
    assert fake_api.sql_log == []
    assert len(panel) == 2
