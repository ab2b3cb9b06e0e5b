"""Application configuration."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from backend root (before any os.getenv calls)
load_dotenv(BASE_DIR / ".env")
SPECS_DIR = BASE_DIR / "pintae" / "specs"

# PINT-AE spec registry (50 customer-facing DRs for the 2025-Q2 release)
SPEC_REGISTRY_PATH = Path(os.getenv("PINTAE_SPEC_REGISTRY", str(SPECS_DIR / "pint_ae_2025_q2.json")))
SPEC_VERSION_LABEL = "PINT-AE 2025-Q2 - UAE DR v1.0.1"
DEFAULT_USE_CASE = "UAE B2B Standard Invoice"
RULESET_VERSION = "v1.0.0"

# Readiness gating (percentages)
MANDATORY_MAPPING_COVERAGE_THRESHOLD = float(os.getenv("PINTAE_MAPPING_COVERAGE_THRESHOLD", "100"))
MANDATORY_POPULATION_THRESHOLD = float(os.getenv("PINTAE_POPULATION_THRESHOLD", "99"))
POPULATION_WARNING_THRESHOLD = float(os.getenv("PINTAE_POPULATION_WARNING_THRESHOLD", "99"))

# Validation tolerances
MONETARY_TOLERANCE = float(os.getenv("PINTAE_MONETARY_TOLERANCE", "0.01"))

# Fuzzy search default profile: strict | balanced | loose
FUZZY_DEFAULT_STRICTNESS = os.getenv("PINTAE_FUZZY_STRICTNESS", "balanced").strip().lower()

# UC1 code sets
ALLOWED_VAT_RATES = [0, 5]
ALLOWED_INVOICE_TYPE_CODES = ["380", "381", "383", "384", "386", "389"]
ALLOWED_PAYMENT_MEANS_CODES = ["10", "20", "30", "31", "42", "48", "49", "57", "58", "59", "ZZZ"]
ALLOWED_SUBDIVISION_CODES = ["AE-AZ", "AE-AJ", "AE-FU", "AE-SH", "AE-DU", "AE-RK", "AE-UQ"]

# Format patterns
TRN_PATTERN = r"^\d{15}$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
CURRENCY_PATTERN = r"^[A-Z]{3}$"
COUNTRY_CODE_PATTERN = r"^[A-Z]{2}$"

# Severity tables
SLA_HOURS_BY_SEVERITY = {"Critical": 4, "High": 24, "Medium": 72, "Low": 168}
SEVERITY_RISK_WEIGHTS = {"Critical": 10, "High": 6, "Medium": 3, "Low": 1}
SEVERITY_SCORE_PENALTIES = {"Critical": 25, "High": 15, "Medium": 8, "Low": 3}

# Frontend origins allowed by CORS (comma-separated)
CORS_ORIGINS = [
    o.strip() for o in os.getenv(
        "PINTAE_CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
    ).split(",") if o.strip()
]

# Debug trace mode: set PINTAE_TRACE=1 to get detailed rule engine logs
TRACE_ENABLED = os.getenv("PINTAE_TRACE", "").strip().lower() in ("1", "true", "yes")
