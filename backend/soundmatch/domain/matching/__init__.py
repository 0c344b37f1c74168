"""Pairwise compatibility: candidates, similarity, score cache, ledger and recalculation."""
