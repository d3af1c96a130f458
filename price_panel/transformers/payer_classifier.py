"""
Classify free-text payer names into standard payer categories
"""
import re
import pandas as pd
import logging
from typing import Optional, Pattern, Sequence, Tuple

logger = logging.getLogger(__name__)

OTHER = "Other"

# Evaluated top to bottom, first match wins. Medicare Advantage and Medicaid
# must stay ahead of the plain Medicare pattern.
PAYER_CATEGORY_PATTERNS: Tuple[Tuple[str, Pattern], ...] = tuple(
    (category, re.compile(pattern, re.IGNORECASE))
    for category, pattern in [
        ("BCBS", r"BLUE\s*CROSS|BLUE\s*SHIELD|BCBS|ANTHEM|CAREFIRST|HIGHMARK|PREMERA|REGENCE|WELLMARK|HORIZON|INDEPENDENCE|EXCELLUS"),
        ("UHC", r"UNITED\s*HEALTH|UHC|OPTUM|UHCSR|UNITED\s*BEHAVIORAL"),
        ("Aetna", r"AETNA|CVS\s*HEALTH"),
        ("Cigna", r"CIGNA|EVERNORTH"),
        ("Humana", r"HUMANA"),
        ("Kaiser", r"KAISER"),
        ("Centene", r"CENTENE|WELLCARE|AMBETTER|HEALTH\s*NET|FIDELIS|PEACH\s*STATE|SUNSHINE\s*HEALTH"),
        ("Molina", r"MOLINA"),
        ("Medicare Advantage", r"MEDICARE\s*ADV|MA-PD|MAPD"),
        ("Medicaid MCO", r"MEDICAID|MEDI-CAL|CHIP"),
        ("Medicare", r"MEDICARE"),
        ("Tricare", r"TRICARE"),
    ]
)

PAYER_CATEGORIES = tuple(category for category, _ in PAYER_CATEGORY_PATTERNS) + (OTHER,)


def classify_payer(payer_name,
                   patterns: Sequence[Tuple[str, Pattern]] = PAYER_CATEGORY_PATTERNS) -> Optional[str]:
    """Category for one payer name; None for missing or blank names"""
    if payer_name is None or (not isinstance(payer_name, str) and pd.isna(payer_name)):
        return None
    name = str(payer_name).strip()
    if not name:
        return None
    for category, pattern in patterns:
        if pattern.search(name):
            return category
    return OTHER


class PayerClassifier:
    """Attach payer_category to negotiated rates"""

    def __init__(self, patterns: Sequence[Tuple[str, Pattern]] = PAYER_CATEGORY_PATTERNS):
        self.patterns = patterns

    def classify_rates(self, rates: pd.DataFrame, payer_column: str = 'payer_name') -> pd.DataFrame:
        logger.info("Classifying payers...")
        rates = rates.copy()
        negotiated = rates['rate_category'] == 'negotiated'

        rates['payer_category'] = None
        if negotiated.any():
            rates.loc[negotiated, 'payer_category'] = rates.loc[negotiated, payer_column].map(
                lambda name: classify_payer(name, self.patterns)
            )

        neg = rates.loc[negotiated, 'payer_category']
        classified = int((neg.notna() & (neg != OTHER)).sum())
        share = 100 * classified / len(neg) if len(neg) else 0.0
        logger.info(f"Payer classification: {classified} / {len(neg)} ({share:.1f}%) matched")

        return rates
