# api/config.py

import os
from decimal import Decimal

# --- Service ---
API_TITLE: str = os.getenv("API_TITLE", "Blanket Loan Allocation API")
API_VERSION: str = os.getenv("API_VERSION", "0.1.0")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))

# --- Allocation defaults (used when a request omits them) ---
DEFAULT_MIN_DSCR: Decimal = Decimal(os.getenv("DEFAULT_MIN_DSCR", "1.00"))
DEFAULT_MAX_LTV: Decimal = Decimal(os.getenv("DEFAULT_MAX_LTV", "0.80"))
DEFAULT_MAX_ITERATIONS: int = int(os.getenv("DEFAULT_MAX_ITERATIONS", "50"))
DEFAULT_CONVERGENCE_TOLERANCE: Decimal = Decimal(os.getenv("DEFAULT_CONVERGENCE_TOLERANCE", "1.00"))
