"""Selection and rewriting of released entries."""

from backcast.publish.rewriter import rewrite, status_line
from backcast.publish.selector import count_eligible, next_release

__all__ = ["count_eligible", "next_release", "rewrite", "status_line"]
