"""
stepline_batch.items -- Item source, transform and sink protocols.
"""

from stepline_batch.items.base import (
    CompositeTransform,
    FunctionTransform,
    ItemSink,
    ItemSource,
    ItemTransform,
    PassThroughTransform,
)

__all__ = [
    "CompositeTransform",
    "FunctionTransform",
    "ItemSink",
    "ItemSource",
    "ItemTransform",
    "PassThroughTransform",
]
