"""
Tally Engine

Live per-option vote counts, weights and percentages. Results are computed
from the stored votes on every call and never cached.
"""

import logging
from typing import Iterable, List, Optional

from .models import OptionResult, Proposal, ProposalResults, Vote
from .protocols import GovernanceRepositoryProtocol, ProposalNotFoundError

logger = logging.getLogger(__name__)


def tally_votes(proposal_id: str, options: List[str], votes: Iterable[Vote]) -> ProposalResults:
    """Aggregate votes per option; percentages are of total weight (0 when no weight)"""
    counts = [0] * len(options)
    weights = [0] * len(options)
    total_voters = 0

    for vote in votes:
        total_voters += 1
        if 0 <= vote.vote_option < len(options):
            counts[vote.vote_option] += 1
            weights[vote.vote_option] += vote.vote_weight
        else:
            logger.warning(f"Vote {vote.vote_id} on {proposal_id} references unknown option {vote.vote_option}")

    total_weight = sum(weights)
    results = [
        OptionResult(
            option=option,
            index=i,
            vote_count=counts[i],
            total_weight=weights[i],
            percentage=(weights[i] / total_weight * 100) if total_weight > 0 else 0.0,
        )
        for i, option in enumerate(options)
    ]

    return ProposalResults(
        proposal_id=proposal_id,
        results=results,
        total_voters=total_voters,
        total_weight=total_weight,
    )


class TallyEngine:
    """Computes proposal results on demand from the repository"""

    def __init__(self, repository: GovernanceRepositoryProtocol):
        self.repository = repository

    async def get_results(self, proposal_id: str, proposal: Optional[Proposal] = None) -> ProposalResults:
        if proposal is None:
            proposal = await self.repository.get_proposal(proposal_id)
            if proposal is None:
                raise ProposalNotFoundError(f"Proposal {proposal_id} not found")

        votes = await self.repository.list_votes(proposal_id)
        return tally_votes(proposal_id, proposal.options, votes)
