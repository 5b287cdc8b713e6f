"""
Governance Service

Milestone-gated governance for charity campaigns.

Features:
- Campaigns with ordered percentage milestones
- Automatic fund-release proposals when donations cross a milestone
- Reward-point weighted voting, one vote per voter per proposal
- Live tallies and one-time execution that approves or re-opens milestones
- Event-driven integration with the donation pipeline
"""

__version__ = "1.0.0"
