"""
RPKI Dash - daily Route Origin Validation snapshots of the global routing table.

Builds one dated snapshot per run:
- VRP export and RIS route dump ingestion into a SQLite record store
- Six-state route origin validation with per-route VRP match trails
- IANA registry (RIR) annotation for IPv4 and IPv6 routes
- Aggregate summary logged and optionally written as YAML
"""

__version__ = "1.0.0"
__author__ = "RPKI Dash Project"
