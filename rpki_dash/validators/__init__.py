"""
RPKI Dash Validators Module

Route origin validation of observed routes against VRPs:
- Six-state classification with Valid precedence
- Binary-prefix candidate search on the record store index
"""

from .rov import RouteOriginValidator, classify, is_candidate

__all__ = ["RouteOriginValidator", "classify", "is_candidate"]
