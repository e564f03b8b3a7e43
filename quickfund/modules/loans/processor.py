import asyncio
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quickfund.core.config import settings
from quickfund.modules.loans.models import Loan
from quickfund.modules.loans.schemas import LoanScoringJob
from quickfund.modules.loans.scoring import ScoringProfile, score_applicant

logger = logging.getLogger(__name__)


class LoanScoringProcessor:
    """
    Handles ``score-loan`` jobs.

    Scores from the snapshot carried in the job and overwrites ``Loan.score``.
    The loan's status is never touched, so redelivery is harmless.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], delay: Optional[float] = None):
        self.session_factory = session_factory
        self.delay = settings.SCORING_JOB_DELAY_SECONDS if delay is None else delay

    @staticmethod
    def score(job: LoanScoringJob) -> int:
        return score_applicant(ScoringProfile(
            amount=job.amount,
            term=job.term,
            employment_status=job.employment_status,
            monthly_income=job.income,
            loan_history=job.loan_history,
            payment_history=job.payment_history,
        ))

    async def handle(self, payload: Dict[str, Any]) -> Optional[int]:
        job = LoanScoringJob.model_validate(payload)
        logger.info(f"Processing credit scoring for loan {job.loan_id}")

        if self.delay:
            await asyncio.sleep(self.delay)

        score = self.score(job)

        async with self.session_factory() as db:
            loan = await db.get(Loan, job.loan_id)
            if loan is None:
                logger.warning(f"Loan {job.loan_id} no longer exists; skipping score")
                return None

            loan.score = score
            await db.commit()

        logger.info(f"Credit scoring completed for loan {job.loan_id}: score {score}")
        return score
