"""Malaysian payroll computation core."""

from payroll_core.config import PayrollAccounts, Settings, get_settings
from payroll_core.exceptions import PayrollError
from payroll_core.payroll import PayrollCore, load_rate_table

__version__ = "0.1.0"

__all__ = [
    "PayrollAccounts",
    "PayrollCore",
    "PayrollError",
    "Settings",
    "get_settings",
    "load_rate_table",
]
