"""
Governance Service Data Repository

Data access layer - PostgreSQL (asyncpg)
Implements GovernanceRepositoryProtocol from protocols.py

Uniqueness and single-winner transitions are enforced in SQL: unique
constraints for votes and pool ids, conditional UPDATE ... WHERE status = ...
RETURNING for every status change, an atomic increment for total_raised keyed
by transaction signature, and votes that only land on open proposals.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper

from .models import (
    Campaign,
    ExecutionOutcome,
    Milestone,
    MilestoneStatus,
    Proposal,
    ProposalStatus,
    ProposalType,
    Vote,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class GovernanceRepository:
    """Governance service data repository - PostgreSQL (Async)"""

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClientWrapper] = None):
        if config is None:
            config = ConfigManager("governance_service")

        self.db = db or PostgresClientWrapper(service_name="governance_service", config=config)
        self.schema = "governance"
        self.users_table = "users"
        self.campaigns_table = "campaigns"
        self.milestones_table = "campaign_milestones"
        self.proposals_table = "proposals"
        self.votes_table = "votes"
        self.processed_donations_table = "processed_donations"

    async def initialize(self, run_migrations: bool = False):
        """Initialize database connection (optionally applying the schema)"""
        async with self.db:
            if run_migrations:
                for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
                    await self.db.execute_script(path.read_text())
                    logger.info(f"Applied migration {path.name}")
        logger.info("Governance repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Governance repository database connection closed")

    async def health_check(self) -> bool:
        result = await self.db.health_check()
        return bool(result and result.get("healthy"))

    # ====================
    # Users
    # ====================

    async def get_reward_points(self, address: str) -> Optional[int]:
        """Reward points of a registered user, None if unknown"""
        try:
            query = f'''
                SELECT reward_points FROM {self.schema}.{self.users_table}
                WHERE address = $1
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[address])

            if result is None:
                return None
            return int(result.get("reward_points") or 0)

        except Exception as e:
            logger.error(f"Error reading reward points for {address}: {e}")
            raise

    # ====================
    # Campaigns
    # ====================

    async def create_campaign(self, campaign: Campaign, milestones: List[Milestone]) -> Optional[Campaign]:
        """Insert campaign and milestones atomically; None if pool_id is taken"""
        now = campaign.created_at or datetime.now(timezone.utc)
        campaign_query = f'''
            INSERT INTO {self.schema}.{self.campaigns_table} (
                campaign_id, pool_id, recipient, target_amount, total_raised,
                deadline, is_active, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
            RETURNING *
        '''
        milestone_query = f'''
            INSERT INTO {self.schema}.{self.milestones_table} (
                milestone_id, campaign_id, milestone_index, description,
                percentage, status, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
        '''

        try:
            async with self.db.transaction() as tx:
                row = await tx.query_row(campaign_query, params=[
                    campaign.campaign_id,
                    campaign.pool_id,
                    campaign.recipient,
                    campaign.target_amount,
                    campaign.total_raised,
                    campaign.deadline,
                    campaign.is_active,
                    now,
                ])
                for milestone in milestones:
                    await tx.execute(milestone_query, params=[
                        milestone.milestone_id,
                        campaign.campaign_id,
                        milestone.index,
                        milestone.description,
                        milestone.percentage,
                        milestone.status.value,
                        now,
                    ])

            logger.info(f"Created campaign {campaign.campaign_id} for pool {campaign.pool_id} with {len(milestones)} milestones")
            return self._row_to_campaign(row)

        except asyncpg.UniqueViolationError:
            logger.warning(f"Campaign for pool {campaign.pool_id} already exists")
            return None
        except Exception as e:
            logger.error(f"Error creating campaign for pool {campaign.pool_id}: {e}", exc_info=True)
            raise

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.campaigns_table}
                WHERE campaign_id = $1
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[campaign_id])

            return self._row_to_campaign(result) if result else None

        except Exception as e:
            logger.error(f"Error getting campaign {campaign_id}: {e}")
            raise

    async def get_campaign_by_pool(self, pool_id: str) -> Optional[Campaign]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.campaigns_table}
                WHERE pool_id = $1
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[pool_id])

            return self._row_to_campaign(result) if result else None

        except Exception as e:
            logger.error(f"Error getting campaign for pool {pool_id}: {e}")
            raise

    async def list_campaigns(self, active_only: bool = False) -> List[Campaign]:
        try:
            where_clause = "WHERE is_active = TRUE" if active_only else ""
            query = f'''
                SELECT * FROM {self.schema}.{self.campaigns_table}
                {where_clause}
                ORDER BY created_at DESC
            '''

            async with self.db:
                results = await self.db.query(query)

            return [self._row_to_campaign(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error listing campaigns: {e}")
            raise

    async def increment_total_raised(self, campaign_id: str, amount: Decimal) -> Optional[Decimal]:
        """Atomic total_raised += amount, returning the new total"""
        try:
            query = f'''
                UPDATE {self.schema}.{self.campaigns_table}
                SET total_raised = total_raised + $1,
                    updated_at = $2
                WHERE campaign_id = $3
                RETURNING total_raised
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[amount, datetime.now(timezone.utc), campaign_id])

            if result is None:
                return None
            return Decimal(result["total_raised"])

        except Exception as e:
            logger.error(f"Error incrementing total raised for campaign {campaign_id}: {e}")
            raise

    async def record_donation(
        self,
        campaign_id: str,
        transaction_signature: str,
        donor_address: str,
        amount: Decimal,
    ) -> Optional[Decimal]:
        """
        Claim the signature and add the amount in one statement.

        Returns the new total, or None when the signature was already
        processed (or the campaign does not exist); nothing is applied then.
        """
        try:
            query = f'''
                WITH claimed AS (
                    INSERT INTO {self.schema}.{self.processed_donations_table} (
                        transaction_signature, campaign_id, donor_address, amount, processed_at
                    )
                    SELECT $1::text, campaign_id, $2::text, $3::numeric, $4::timestamptz
                    FROM {self.schema}.{self.campaigns_table}
                    WHERE campaign_id = $5
                    ON CONFLICT (transaction_signature) DO NOTHING
                    RETURNING campaign_id
                )
                UPDATE {self.schema}.{self.campaigns_table} c
                SET total_raised = c.total_raised + $3::numeric,
                    updated_at = $4::timestamptz
                FROM claimed
                WHERE c.campaign_id = claimed.campaign_id
                RETURNING c.total_raised
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[
                    transaction_signature,
                    donor_address,
                    amount,
                    datetime.now(timezone.utc),
                    campaign_id,
                ])

            if result is None:
                logger.info(f"Donation {transaction_signature} to campaign {campaign_id} already processed")
                return None
            return Decimal(result["total_raised"])

        except Exception as e:
            logger.error(f"Error recording donation {transaction_signature} for campaign {campaign_id}: {e}")
            raise

    # ====================
    # Milestones
    # ====================

    async def list_milestones(self, campaign_id: str) -> List[Milestone]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.milestones_table}
                WHERE campaign_id = $1
                ORDER BY milestone_index ASC
            '''

            async with self.db:
                results = await self.db.query(query, params=[campaign_id])

            return [self._row_to_milestone(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error listing milestones for campaign {campaign_id}: {e}")
            raise

    async def get_milestone(self, campaign_id: str, index: int) -> Optional[Milestone]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.milestones_table}
                WHERE campaign_id = $1 AND milestone_index = $2
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[campaign_id, index])

            return self._row_to_milestone(result) if result else None

        except Exception as e:
            logger.error(f"Error getting milestone {index} of campaign {campaign_id}: {e}")
            raise

    async def transition_milestone(
        self,
        campaign_id: str,
        index: int,
        from_status: MilestoneStatus,
        to_status: MilestoneStatus,
        governance_proposal_id: Optional[str] = None,
    ) -> bool:
        """Conditional status update; True only for the caller that moved it"""
        try:
            query = f'''
                UPDATE {self.schema}.{self.milestones_table}
                SET status = $1,
                    governance_proposal_id = COALESCE($2, governance_proposal_id),
                    updated_at = $3
                WHERE campaign_id = $4 AND milestone_index = $5 AND status = $6
                RETURNING milestone_id
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[
                    to_status.value,
                    governance_proposal_id,
                    datetime.now(timezone.utc),
                    campaign_id,
                    index,
                    from_status.value,
                ])

            return result is not None

        except Exception as e:
            logger.error(
                f"Error transitioning milestone {index} of campaign {campaign_id} "
                f"{from_status.value}->{to_status.value}: {e}"
            )
            raise

    # ====================
    # Proposals
    # ====================

    async def create_proposal(self, proposal: Proposal) -> Proposal:
        insert_query = f'''
            INSERT INTO {self.schema}.{self.proposals_table} (
                proposal_id, creator_address, title, description, options,
                status, total_votes, created_at, closes_at, proposal_type,
                campaign_id, milestone_index
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING *
        '''
        link_query = f'''
            UPDATE {self.schema}.{self.milestones_table}
            SET governance_proposal_id = $1,
                updated_at = $2
            WHERE campaign_id = $3 AND milestone_index = $4
        '''

        try:
            async with self.db.transaction() as tx:
                row = await tx.query_row(insert_query, params=[
                    proposal.proposal_id,
                    proposal.creator_address,
                    proposal.title,
                    proposal.description,
                    list(proposal.options),
                    proposal.status.value,
                    proposal.total_votes,
                    proposal.created_at,
                    proposal.closes_at,
                    proposal.proposal_type.value,
                    proposal.campaign_id,
                    proposal.milestone_index,
                ])
                if proposal.proposal_type == ProposalType.FUND_RELEASE:
                    await tx.execute(link_query, params=[
                        proposal.proposal_id,
                        proposal.created_at,
                        proposal.campaign_id,
                        proposal.milestone_index,
                    ])

            return self._row_to_proposal(row)

        except Exception as e:
            logger.error(f"Error creating proposal {proposal.proposal_id}: {e}", exc_info=True)
            raise

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.proposals_table}
                WHERE proposal_id = $1
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[proposal_id])

            return self._row_to_proposal(result) if result else None

        except Exception as e:
            logger.error(f"Error getting proposal {proposal_id}: {e}")
            raise

    async def list_proposals(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        try:
            params: List[Any] = []
            where_clause = ""
            if status is not None:
                where_clause = "WHERE status = $1"
                params.append(status.value)

            query = f'''
                SELECT * FROM {self.schema}.{self.proposals_table}
                {where_clause}
                ORDER BY created_at DESC
            '''

            async with self.db:
                results = await self.db.query(query, params=params)

            return [self._row_to_proposal(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error listing proposals: {e}")
            raise

    async def mark_proposal_executed(
        self,
        proposal_id: str,
        outcome: ExecutionOutcome,
        executed_at: datetime,
        expected_total_votes: Optional[int] = None,
        milestone_transition: Optional[Tuple[MilestoneStatus, MilestoneStatus]] = None,
    ) -> Optional[Proposal]:
        """
        active → executed, plus the milestone transition, in one transaction.

        None when the proposal is no longer active or its vote count moved
        away from expected_total_votes. When the milestone is not in the
        expected source state the proposal still executes and the stored
        outcome carries milestone_action = None.
        """
        execute_query = f'''
            UPDATE {self.schema}.{self.proposals_table}
            SET status = $1,
                executed_at = $2,
                outcome = $3::jsonb
            WHERE proposal_id = $4 AND status = $5
              AND ($6::integer IS NULL OR total_votes = $6::integer)
            RETURNING *
        '''
        milestone_query = f'''
            UPDATE {self.schema}.{self.milestones_table}
            SET status = $1,
                governance_proposal_id = $2,
                updated_at = $3
            WHERE campaign_id = $4 AND milestone_index = $5 AND status = $6
            RETURNING milestone_id
        '''
        outcome_query = f'''
            UPDATE {self.schema}.{self.proposals_table}
            SET outcome = $1::jsonb
            WHERE proposal_id = $2
            RETURNING *
        '''

        try:
            async with self.db.transaction() as tx:
                row = await tx.query_row(execute_query, params=[
                    ProposalStatus.EXECUTED.value,
                    executed_at,
                    json.dumps(outcome.model_dump(mode="json")),
                    proposal_id,
                    ProposalStatus.ACTIVE.value,
                    expected_total_votes,
                ])
                if row is None:
                    return None

                if milestone_transition is not None:
                    from_status, to_status = milestone_transition
                    moved = await tx.query_row(milestone_query, params=[
                        to_status.value,
                        proposal_id,
                        executed_at,
                        row["campaign_id"],
                        row["milestone_index"],
                        from_status.value,
                    ])
                    if moved is None:
                        logger.error(
                            f"Milestone {row['milestone_index']} of campaign {row['campaign_id']} was not "
                            f"{from_status.value}; proposal {proposal_id} executed without milestone action"
                        )
                        unapplied = outcome.model_copy(update={"milestone_action": None})
                        row = await tx.query_row(outcome_query, params=[
                            json.dumps(unapplied.model_dump(mode="json")),
                            proposal_id,
                        ])

            return self._row_to_proposal(row)

        except Exception as e:
            logger.error(f"Error marking proposal {proposal_id} executed: {e}")
            raise

    # ====================
    # Votes
    # ====================

    async def get_vote(self, proposal_id: str, voter_address: str) -> Optional[Vote]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.votes_table}
                WHERE proposal_id = $1 AND voter_address = $2
            '''

            async with self.db:
                result = await self.db.query_row(query, params=[proposal_id, voter_address])

            return self._row_to_vote(result) if result else None

        except Exception as e:
            logger.error(f"Error getting vote of {voter_address} on {proposal_id}: {e}")
            raise

    async def insert_vote(self, vote: Vote) -> Optional[Vote]:
        """
        Insert vote + bump total_votes together.

        The insert only lands while the proposal is active and closes after
        the vote's timestamp. None on (proposal, voter) conflict or when the
        proposal is closed.
        """
        insert_query = f'''
            INSERT INTO {self.schema}.{self.votes_table} (
                vote_id, proposal_id, voter_address, vote_option, vote_weight, created_at
            )
            SELECT $1::text, $2::text, $3::text, $4::integer, $5::integer, $6::timestamptz
            WHERE EXISTS (
                SELECT 1 FROM {self.schema}.{self.proposals_table}
                WHERE proposal_id = $2::text AND status = $7 AND closes_at > $6::timestamptz
                FOR SHARE
            )
            ON CONFLICT (proposal_id, voter_address) DO NOTHING
            RETURNING *
        '''
        count_query = f'''
            UPDATE {self.schema}.{self.proposals_table}
            SET total_votes = total_votes + 1
            WHERE proposal_id = $1
        '''

        try:
            async with self.db.transaction() as tx:
                row = await tx.query_row(insert_query, params=[
                    vote.vote_id,
                    vote.proposal_id,
                    vote.voter_address,
                    vote.vote_option,
                    vote.vote_weight,
                    vote.created_at,
                    ProposalStatus.ACTIVE.value,
                ])
                if row is None:
                    return None
                await tx.execute(count_query, params=[vote.proposal_id])

            return self._row_to_vote(row)

        except Exception as e:
            logger.error(f"Error inserting vote of {vote.voter_address} on {vote.proposal_id}: {e}", exc_info=True)
            raise

    async def list_votes(self, proposal_id: str) -> List[Vote]:
        try:
            query = f'''
                SELECT * FROM {self.schema}.{self.votes_table}
                WHERE proposal_id = $1
                ORDER BY created_at ASC
            '''

            async with self.db:
                results = await self.db.query(query, params=[proposal_id])

            return [self._row_to_vote(row) for row in results] if results else []

        except Exception as e:
            logger.error(f"Error listing votes for {proposal_id}: {e}")
            raise

    # ====================
    # Row conversion
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> Campaign:
        return Campaign(
            campaign_id=row["campaign_id"],
            pool_id=row["pool_id"],
            recipient=row["recipient"],
            target_amount=Decimal(row["target_amount"]),
            total_raised=Decimal(row.get("total_raised") or 0),
            deadline=row["deadline"],
            is_active=row.get("is_active", True),
            created_at=row.get("created_at"),
        )

    def _row_to_milestone(self, row: Dict[str, Any]) -> Milestone:
        return Milestone(
            milestone_id=row["milestone_id"],
            campaign_id=row["campaign_id"],
            index=row["milestone_index"],
            description=row["description"],
            percentage=row["percentage"],
            status=MilestoneStatus(row["status"]),
            governance_proposal_id=row.get("governance_proposal_id"),
            created_at=row.get("created_at"),
        )

    def _row_to_proposal(self, row: Dict[str, Any]) -> Proposal:
        outcome = row.get("outcome")
        if isinstance(outcome, str):
            outcome = json.loads(outcome)
        return Proposal(
            proposal_id=row["proposal_id"],
            creator_address=row["creator_address"],
            title=row["title"],
            description=row["description"],
            options=list(row.get("options") or []),
            status=ProposalStatus(row["status"]),
            total_votes=row.get("total_votes") or 0,
            created_at=row["created_at"],
            closes_at=row["closes_at"],
            proposal_type=ProposalType(row.get("proposal_type") or ProposalType.GENERAL.value),
            campaign_id=row.get("campaign_id"),
            milestone_index=row.get("milestone_index"),
            executed_at=row.get("executed_at"),
            outcome=ExecutionOutcome(**outcome) if outcome else None,
        )

    def _row_to_vote(self, row: Dict[str, Any]) -> Vote:
        return Vote(
            vote_id=row["vote_id"],
            proposal_id=row["proposal_id"],
            voter_address=row["voter_address"],
            vote_option=row["vote_option"],
            vote_weight=row.get("vote_weight") or 0,
            created_at=row["created_at"],
        )
