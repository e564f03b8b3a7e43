# Loans module
from quickfund.modules.loans.models import Loan, LoanStatus

__all__ = ["Loan", "LoanStatus"]
