"""
RPKI Dash Reports Module - snapshot summaries

Aggregates validity and registry counts for a dated snapshot and writes
them as YAML.
"""

from .summary import SummaryWriter, build_summary

__all__ = ["SummaryWriter", "build_summary"]
