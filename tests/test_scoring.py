"""
Credit scoring tests
"""
import pytest
from decimal import Decimal

from quickfund.core.exceptions import NotFoundError
from quickfund.modules.loans.models import LoanStatus
from quickfund.modules.loans.scoring import (
    ProfileCompleteness,
    ScoringProfile,
    ScoringService,
    amount_score,
    calculate_loan_terms,
    income_score,
    loan_history_score,
    payment_history_score,
    quote_interest_rate,
    score_applicant,
    should_approve_loan,
    term_score,
)
from quickfund.modules.payments.models import PaymentStatus
from quickfund.modules.users.models import EmploymentStatus

from tests.conftest import create_loan


class TestScoreComponents:

    @pytest.mark.unit
    @pytest.mark.parametrize("income,points", [
        (None, 0),
        (Decimal("49999"), 0),
        (Decimal("50000"), 80),
        (Decimal("100000"), 100),
        (Decimal("250000"), 120),
        (Decimal("300000"), 150),
        (Decimal("500000"), 200),
    ])
    def test_income_brackets(self, income, points):
        assert income_score(income) == points

    @pytest.mark.unit
    @pytest.mark.parametrize("amount,points", [
        (Decimal("50000"), 100),
        (Decimal("50001"), 80),
        (Decimal("200000"), 60),
        (Decimal("500000"), 40),
        (Decimal("500001"), 20),
    ])
    def test_amount_brackets(self, amount, points):
        assert amount_score(amount) == points

    @pytest.mark.unit
    @pytest.mark.parametrize("term,points", [(6, 100), (7, 80), (24, 60), (36, 40), (37, 20)])
    def test_term_brackets(self, term, points):
        assert term_score(term) == points

    @pytest.mark.unit
    def test_new_borrower_bonus(self):
        assert loan_history_score([]) == 50
        # Unfinished loans do not count as history
        assert loan_history_score([LoanStatus.ACTIVE, LoanStatus.REJECTED]) == 50

    @pytest.mark.unit
    def test_finished_loans(self):
        assert loan_history_score([LoanStatus.COMPLETED, LoanStatus.COMPLETED]) == 100
        assert loan_history_score([LoanStatus.COMPLETED, LoanStatus.DEFAULTED]) == -150

    @pytest.mark.unit
    def test_payment_history(self):
        completed = PaymentStatus.COMPLETED
        failed = PaymentStatus.FAILED

        assert payment_history_score([]) == 0
        assert payment_history_score([completed] * 20) == 150
        assert payment_history_score([completed] * 19 + [failed]) == 130
        assert payment_history_score([completed] * 9 + [failed]) == 80
        assert payment_history_score([completed] * 8 + [failed] * 2) == 10
        assert payment_history_score([completed, failed]) == -20


class TestScoreApplicant:

    @pytest.mark.unit
    def test_unknown_fields_contribute_nothing(self):
        assert score_applicant(ScoringProfile(amount=Decimal("40000"))) == 100

    @pytest.mark.unit
    def test_full_profile(self):
        profile = ScoringProfile(
            amount=Decimal("40000"),
            term=6,
            is_verified=True,
            employment_status=EmploymentStatus.EMPLOYED,
            monthly_income=Decimal("600000"),
            loan_history=[],
            payment_history=[],
            profile=ProfileCompleteness(
                phone=True, address=True, city=True, state=True, employer=True, income=True
            ),
        )
        assert score_applicant(profile) == 870

    @pytest.mark.unit
    def test_first_time_salaried_applicant(self):
        profile = ScoringProfile(
            amount=Decimal("20000"),
            term=6,
            is_verified=True,
            employment_status=EmploymentStatus.EMPLOYED,
            monthly_income=Decimal("50000"),
            loan_history=[],
            payment_history=[],
            profile=ProfileCompleteness(
                phone=True, address=True, city=True, state=True, employer=True, income=True
            ),
        )
        # 100 + 200 + 80 + 50 + 0 + 100 + 100 + 120
        assert score_applicant(profile) == 750

    @pytest.mark.unit
    def test_clamped_at_maximum(self):
        profile = ScoringProfile(
            amount=Decimal("40000"),
            term=6,
            is_verified=True,
            employment_status=EmploymentStatus.EMPLOYED,
            monthly_income=Decimal("600000"),
            loan_history=[LoanStatus.COMPLETED] * 20,
        )
        assert score_applicant(profile) == 1000

    @pytest.mark.unit
    def test_clamped_at_minimum(self):
        profile = ScoringProfile(
            amount=Decimal("600000"),
            employment_status=EmploymentStatus.UNEMPLOYED,
            loan_history=[LoanStatus.DEFAULTED] * 5,
        )
        assert score_applicant(profile) == 0


class TestApprovalDecision:

    @pytest.mark.unit
    def test_low_score(self):
        decision = should_approve_loan(599, Decimal("100000"), 12)
        assert not decision.approved
        assert decision.reason == "Credit score too low. Minimum required: 600"

    @pytest.mark.unit
    def test_high_amount_needs_higher_score(self):
        decision = should_approve_loan(700, Decimal("600000"), 12)
        assert not decision.approved
        assert decision.reason == "High loan amount requires higher credit score"

    @pytest.mark.unit
    def test_long_term_needs_higher_score(self):
        decision = should_approve_loan(650, Decimal("100000"), 36)
        assert not decision.approved
        assert decision.reason == "Long-term loans require higher credit score"

    @pytest.mark.unit
    def test_suggests_smaller_amount(self):
        decision = should_approve_loan(620, Decimal("300000"), 12)
        assert not decision.approved
        assert decision.suggested_amount == Decimal("150000")

    @pytest.mark.unit
    def test_suggests_shorter_term(self):
        decision = should_approve_loan(620, Decimal("100000"), 18)
        assert not decision.approved
        assert decision.suggested_term == 12

    @pytest.mark.unit
    @pytest.mark.parametrize("score,amount,term", [
        (620, Decimal("100000"), 12),
        (760, Decimal("600000"), 24),
        (800, Decimal("1000000"), 60),
    ])
    def test_approved(self, score, amount, term):
        decision = should_approve_loan(score, amount, term)
        assert decision.approved
        assert decision.reason == "Loan application meets approval criteria"


class TestQuote:

    @pytest.mark.unit
    @pytest.mark.parametrize("amount,term,score,rate", [
        (Decimal("100000"), 12, 820, Decimal("0.10")),
        (Decimal("40000"), 12, 820, Decimal("0.09")),
        (Decimal("100000"), 12, 720, Decimal("0.12")),
        (Decimal("600000"), 36, 650, Decimal("0.18")),
        (Decimal("100000"), 12, 500, Decimal("0.20")),
    ])
    def test_interest_rate(self, amount, term, score, rate):
        assert quote_interest_rate(amount, term, score) == rate

    @pytest.mark.unit
    def test_total_compounds_annually(self):
        quote = calculate_loan_terms(Decimal("100000"), 12, 650)

        assert quote.interest_rate == Decimal("0.15")
        assert quote.monthly_payment == Decimal("9025.83")
        assert quote.total_amount == Decimal("115000.00")
        assert quote.total_amount != quote.monthly_payment * 12


class TestScoringService:

    @pytest.mark.integration
    async def test_scores_from_persisted_profile(self, db_session, test_user):
        # employed 200, income 120, new borrower 50, amount 80, term 80, three profile fields 60
        score = await ScoringService(db_session).calculate_credit_score(test_user.id, Decimal("100000"), 12)
        assert score == 590

    @pytest.mark.integration
    async def test_history_counts_finished_loans(self, db_session, test_user):
        await create_loan(db_session, test_user, LoanStatus.COMPLETED, reference="QF-LOAN-DONE1")
        await create_loan(db_session, test_user, LoanStatus.COMPLETED, reference="QF-LOAN-DONE2")

        score = await ScoringService(db_session).calculate_credit_score(test_user.id, Decimal("100000"), 12)
        assert score == 640

    @pytest.mark.integration
    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await ScoringService(db_session).calculate_credit_score(9999, Decimal("100000"), 12)
