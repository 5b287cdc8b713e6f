"""
Execution Service

Finalizes closed proposals exactly once. The active → executed flip is a
conditional update that stores the outcome and moves the milestone in the
same transaction; only the caller that wins it publishes side effects.
"""

import logging
from typing import List, Optional, Tuple

from .events.publishers import publish_milestone_approved, publish_proposal_executed
from .models import (
    ExecutionOutcome,
    MilestoneAction,
    MilestoneStatus,
    Proposal,
    ProposalResults,
    ProposalStatus,
    ProposalType,
)
from .protocols import (
    AlreadyExecutedError,
    Clock,
    GovernanceRepositoryProtocol,
    ProposalNotFoundError,
    StateConflictError,
    VotingStillOpenError,
)
from .tally import TallyEngine

logger = logging.getLogger(__name__)


def find_yes_no_options(options: List[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Locate the yes/no options by text.

    yes = first option containing "yes"; no = first other option containing
    "no" (both case-insensitive).
    """
    yes_index = next((i for i, o in enumerate(options) if "yes" in o.lower()), None)
    no_index = next(
        (i for i, o in enumerate(options) if i != yes_index and "no" in o.lower()),
        None,
    )
    return yes_index, no_index


def _weight_at(results: ProposalResults, index: Optional[int]) -> int:
    if index is None or index >= len(results.results):
        return 0
    return results.results[index].total_weight


def highest_weight_option(results: ProposalResults) -> Optional[int]:
    """Index of the strictly heaviest option; None on a tie or zero total weight"""
    if results.total_weight <= 0 or not results.results:
        return None
    top = max(r.total_weight for r in results.results)
    leaders = [r.index for r in results.results if r.total_weight == top]
    return leaders[0] if len(leaders) == 1 else None


def decide_fund_release(options: List[str], results: ProposalResults) -> ExecutionOutcome:
    """Approved iff yes weight strictly exceeds no weight (ties lose, no quorum)"""
    yes_index, no_index = find_yes_no_options(options)
    yes_weight = _weight_at(results, yes_index)
    no_weight = _weight_at(results, no_index)
    approved = yes_index is not None and yes_weight > no_weight

    if approved:
        winning_option = yes_index
    elif no_index is not None and no_weight > yes_weight:
        winning_option = no_index
    else:
        winning_option = None

    return ExecutionOutcome(
        approved=approved,
        yes_weight=yes_weight,
        no_weight=no_weight,
        total_voters=results.total_voters,
        milestone_action=MilestoneAction.APPROVED if approved else MilestoneAction.REJECTED,
        winning_option=winning_option,
    )


def decide_general(options: List[str], results: ProposalResults) -> ExecutionOutcome:
    """
    Highest total weight wins; ties and zero weight produce no winner.

    Proposals with a yes option are approved only when the yes option wins,
    otherwise any winner counts as approval.
    """
    winning_option = highest_weight_option(results)
    yes_index, no_index = find_yes_no_options(options)
    if yes_index is not None:
        approved = winning_option == yes_index
    else:
        approved = winning_option is not None

    return ExecutionOutcome(
        approved=approved,
        yes_weight=_weight_at(results, yes_index),
        no_weight=_weight_at(results, no_index),
        total_voters=results.total_voters,
        milestone_action=None,
        winning_option=winning_option,
    )


def milestone_transition_for(
    proposal: Proposal, outcome: ExecutionOutcome
) -> Optional[Tuple[MilestoneStatus, MilestoneStatus]]:
    """Milestone move applied with a fund-release execution; None for general proposals"""
    if proposal.proposal_type != ProposalType.FUND_RELEASE:
        return None
    if outcome.milestone_action == MilestoneAction.APPROVED:
        return MilestoneStatus.PROPOSING, MilestoneStatus.APPROVED
    return MilestoneStatus.PROPOSING, MilestoneStatus.PENDING


class ExecutionService:
    """Applies proposal outcomes once voting has closed"""

    # Re-tally attempts when votes land between the tally and the flip
    MAX_ATTEMPTS = 3

    def __init__(
        self,
        repository: GovernanceRepositoryProtocol,
        tally_engine: TallyEngine,
        clock: Clock,
        event_bus=None,
    ):
        self.repository = repository
        self.tally_engine = tally_engine
        self.clock = clock
        self.event_bus = event_bus

    async def execute(self, proposal_id: str) -> ExecutionOutcome:
        """
        Tally a closed proposal and record its outcome exactly once.

        The executed flip, the stored outcome and the milestone transition
        commit together. The flip only succeeds while the proposal's vote
        count still matches the tally it was decided on.
        """
        proposal = await self.repository.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")

        now = self.clock.now()
        if now < proposal.closes_at:
            raise VotingStillOpenError(
                f"Voting on proposal {proposal_id} is open until {proposal.closes_at.isoformat()}"
            )

        for _ in range(self.MAX_ATTEMPTS):
            if proposal.status == ProposalStatus.EXECUTED:
                raise AlreadyExecutedError(f"Proposal {proposal_id} has already been executed")

            results = await self.tally_engine.get_results(proposal_id, proposal=proposal)
            if proposal.proposal_type == ProposalType.FUND_RELEASE:
                outcome = decide_fund_release(proposal.options, results)
            else:
                outcome = decide_general(proposal.options, results)

            executed = await self.repository.mark_proposal_executed(
                proposal_id,
                outcome,
                now,
                expected_total_votes=results.total_voters,
                milestone_transition=milestone_transition_for(proposal, outcome),
            )
            if executed is not None:
                break

            proposal = await self.repository.get_proposal(proposal_id)
            if proposal is None or proposal.status == ProposalStatus.EXECUTED:
                logger.info(f"Proposal {proposal_id} was executed concurrently by another caller")
                raise AlreadyExecutedError(f"Proposal {proposal_id} has already been executed")
            logger.info(f"Votes on proposal {proposal_id} changed during execution, recounting")
        else:
            raise StateConflictError(f"Votes on proposal {proposal_id} kept changing during execution")

        outcome = executed.outcome or outcome
        logger.info(
            f"Executed proposal {proposal_id}: approved={outcome.approved} "
            f"yes={outcome.yes_weight} no={outcome.no_weight} voters={outcome.total_voters}"
        )

        if executed.proposal_type == ProposalType.FUND_RELEASE:
            await self._report_milestone_action(executed, outcome)

        if self.event_bus:
            await publish_proposal_executed(self.event_bus, executed, outcome)

        return outcome

    async def _report_milestone_action(self, proposal: Proposal, outcome: ExecutionOutcome):
        campaign_id = proposal.campaign_id
        index = proposal.milestone_index

        if outcome.milestone_action is None:
            logger.error(
                f"Milestone {index} of campaign {campaign_id} was not in proposing state; "
                f"outcome of proposal {proposal.proposal_id} not applied to it"
            )
            return

        logger.info(
            f"Milestone {index} of campaign {campaign_id} {outcome.milestone_action.value} "
            f"by proposal {proposal.proposal_id}"
        )

        if outcome.milestone_action == MilestoneAction.APPROVED and self.event_bus:
            campaign = await self.repository.get_campaign(campaign_id)
            milestone = await self.repository.get_milestone(campaign_id, index)
            await publish_milestone_approved(self.event_bus, proposal, campaign, milestone)
