"""Voting core: per-user vote ledger, score aggregation, consensus prices."""

from coincast.voting.aggregator import has_drift, net_score, reconcile, reconcile_all, repair
from coincast.voting.consensus import rank, summarize, summarize_all, weight, weighted_average
from coincast.voting.ledger import VoteChange, VoteLedger, apply_vote_locally, plan_vote

__all__ = [
    "VoteLedger",
    "VoteChange",
    "plan_vote",
    "apply_vote_locally",
    "net_score",
    "has_drift",
    "reconcile",
    "reconcile_all",
    "repair",
    "summarize",
    "summarize_all",
    "rank",
    "weight",
    "weighted_average",
]
