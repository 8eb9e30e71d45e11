"""
RPKI Dash Processors Module

Turns raw feed lines into stored records:
- Prefix codec (addresses as bit-strings)
- Route dump and VRP export ingestion
- Registry delegation annotation
"""

from .prefix_codec import PrefixCodecError, encode, encode_prefix, is_covered

__all__ = ["PrefixCodecError", "encode", "encode_prefix", "is_covered"]
