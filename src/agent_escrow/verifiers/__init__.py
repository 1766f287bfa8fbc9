"""Automated dispute adjudication."""

from agent_escrow.verifiers.criteria import Adjudication, CriteriaAdjudicator

__all__ = ["Adjudication", "CriteriaAdjudicator"]
