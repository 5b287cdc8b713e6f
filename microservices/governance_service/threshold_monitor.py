"""
Threshold Monitor

Applies confirmed donations to a campaign's raised total and detects the
milestones whose cumulative threshold was crossed by that donation.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Union

from .models import Milestone, MilestoneStatus, Proposal
from .proposal_factory import ProposalFactory
from .protocols import GovernanceRepositoryProtocol

logger = logging.getLogger(__name__)


def milestone_thresholds(milestones: Sequence[Milestone], target_amount: Decimal) -> List[Decimal]:
    """Absolute threshold per milestone (cumulative percentage of target), in index order"""
    thresholds = []
    cumulative = 0
    for milestone in sorted(milestones, key=lambda m: m.index):
        cumulative += milestone.percentage
        thresholds.append(Decimal(cumulative) / 100 * target_amount)
    return thresholds


def find_crossed_milestones(
    milestones: Sequence[Milestone],
    target_amount: Decimal,
    prev_raised: Decimal,
    new_raised: Decimal,
) -> List[Milestone]:
    """
    Milestones crossed by moving from prev_raised to new_raised.

    A milestone is crossed iff prev_raised < threshold <= new_raised and it
    is still pending.
    """
    ordered = sorted(milestones, key=lambda m: m.index)
    crossed = []
    for milestone, threshold in zip(ordered, milestone_thresholds(ordered, target_amount)):
        if prev_raised < threshold <= new_raised and milestone.status == MilestoneStatus.PENDING:
            crossed.append(milestone)
    return crossed


class ThresholdMonitor:
    """Best-effort milestone detection for confirmed donations"""

    def __init__(self, repository: GovernanceRepositoryProtocol, proposal_factory: ProposalFactory):
        self.repository = repository
        self.proposal_factory = proposal_factory

    async def on_donation_confirmed(
        self,
        pool_id: str,
        donor_address: str,
        amount: Union[Decimal, int, float, str],
        transaction_signature: Optional[str] = None,
    ) -> List[Proposal]:
        """
        Record a confirmed donation and open proposals for crossed milestones.

        A donation carrying a transaction signature is applied at most once;
        redeliveries of the same signature change nothing.

        Never raises: failures are logged and an empty/partial list returned.
        """
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            logger.warning(f"Ignoring donation to pool {pool_id} with invalid amount {amount!r}")
            return []

        if amount <= 0:
            logger.warning(f"Ignoring non-positive donation {amount} to pool {pool_id}")
            return []

        try:
            campaign = await self.repository.get_campaign_by_pool(pool_id)
            if campaign is None:
                logger.debug(f"No campaign for pool {pool_id}, skipping threshold check")
                return []

            if transaction_signature:
                new_raised = await self.repository.record_donation(
                    campaign.campaign_id, transaction_signature, donor_address, amount
                )
                if new_raised is None:
                    logger.info(f"Donation {transaction_signature} to pool {pool_id} already applied, skipping")
                    return []
            else:
                new_raised = await self.repository.increment_total_raised(campaign.campaign_id, amount)
                if new_raised is None:
                    logger.warning(f"Campaign {campaign.campaign_id} disappeared while recording donation")
                    return []
            prev_raised = new_raised - amount

            milestones = await self.repository.list_milestones(campaign.campaign_id)
            crossed = find_crossed_milestones(milestones, campaign.target_amount, prev_raised, new_raised)
            logger.info(
                f"Pool {pool_id} raised {prev_raised} -> {new_raised} of {campaign.target_amount}; "
                f"{len(crossed)} milestone(s) crossed"
            )
            if not crossed:
                return []

            campaign = campaign.model_copy(update={"total_raised": new_raised})

        except Exception as e:
            logger.error(f"Threshold check failed for pool {pool_id}: {e}", exc_info=True)
            return []

        created: List[Proposal] = []
        for milestone in crossed:
            try:
                proposal = await self.proposal_factory.create_fund_release_proposal(
                    campaign, milestone, donor_address
                )
            except Exception as e:
                logger.error(
                    f"Auto-proposal failed for milestone {milestone.index} of campaign "
                    f"{campaign.campaign_id}: {e}",
                    exc_info=True,
                )
                continue
            if proposal is not None:
                created.append(proposal)

        return created
