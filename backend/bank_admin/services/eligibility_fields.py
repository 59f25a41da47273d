"""
Column layout of a bank eligibility record.

Used by the create endpoint (to fill in missing fields), the template
endpoint and the spreadsheet importer, so all of them agree on field names.
"""
from typing import Any, Dict, List

# Yes/No product eligibility flags
ELIGIBILITY_FIELDS: List[str] = [
    # Home Loan
    "Home Loan-Direct Sale",
    "Home Loan-Resale with Registry",
    "Home Loan-Resale Without Regsitry (Endorsement)",
    "Home Loan-Seller BT in Lease Hold",
    "Home Loan-Seller BT in Free Hold",
    # Plot+Construction
    "Plot+Construction-Direct Sale",
    "Plot+Construction-Resale with Registry",
    "Plot+Construction-Resale Without Regsitry",
    "Plot+Construction-Seller BT in Lease Hold",
    "Plot+Construction-Seller BT in Free Hold",
    # Plot Loan
    "Plot Loan-Direct Sale from Builder",
    "Plot Loan-Direct Sale from Authority",
    "Plot Loan-Resale with Registry",
    "Plot Loan-Resale Without Registry",
    "Plot Loan-Seller BT in Lease Hold",
    "Plot Loan-Seller BT in Free Hold",
    # Plot+Equity
    "Plot+Equity-Direct Sale",
    "Plot+Equity-Resale",
    # LAP
    "LAP-Against Residential Property",
    "LAP-Against Plot",
    # Other loan types
    "DOD (Drop-line Over Draft)",
    "Top up",
    "Personal Loan",
    "Business Loan",
    "Professional Loan",
]

CIBIL_SCORE_RANGES: List[str] = [
    "650-699",
    "700-729",
    "730-749",
    "750-779",
    "780-799",
    "800+",
    "No CIBIL or -1",
]

ROI_FIELD_TEMPLATES: List[str] = [
    "(HL/Construction/Plot+Construction/Plot) ROI as per CIBIL / {range}",
    "Top up ROI as per CIBIL / {range}",
    "LAP ROI as per CIBIL / {range}",
    "Personal Loan ROI as per CIBIL / {range}",
    "Business Loan ROI as per CIBIL / {range}",
    "Professional Loan ROI as per CIBIL / {range}",
    "Business Loan DOD ROI as per CIBIL / {range}",
    "Personal Loan DOD ROI as per CIBIL / {range}",
    "Professional Loan DOD ROI as per CIBIL / {range}",
]

ROI_FIELDS: List[str] = [
    template.replace("{range}", score_range)
    for template in ROI_FIELD_TEMPLATES
    for score_range in CIBIL_SCORE_RANGES
]

# processing_fees key -> sheet column
PROCESSING_FEE_FIELDS: Dict[str, str] = {
    "homeLoan": "Processing Fee-(Home Loan/Plot/Plot+Construction/Construction)",
    "topUp": "Processing Fee-Top up",
    "lap": "Processing Fee-LAP",
    "personalLoan": "Processing Fee-Personal Loan",
    "businessLoan": "Processing Fee-Business Loan",
    "professionalLoan": "Processing Fee-Professional Loan",
}


def create_default_eligibility_data() -> Dict[str, Any]:
    """Every flag 'No', every ROI 0"""
    data: Dict[str, Any] = {field: "No" for field in ELIGIBILITY_FIELDS}
    data.update({field: 0 for field in ROI_FIELDS})
    return data


def with_defaults(eligibility_data: Dict[str, Any] | None) -> Dict[str, Any]:
    """Fill fields missing from a submitted record with their defaults"""
    merged = create_default_eligibility_data()
    merged.update(eligibility_data or {})
    return merged
