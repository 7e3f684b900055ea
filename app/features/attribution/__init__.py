"""
Attribution feature package.

Every layer of the attribution flow lives here: domain models and
normalization, repositories over the attribution and production databases,
the matching engine and the services around it, background jobs and the
HTTP router.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as attribution_router  # noqa: F401
from .domain.models import AttributionEvent, MatchResult  # noqa: F401
from .services.matching_engine import AttributionMatcher, process_attribution_event  # noqa: F401
from .services.batch_processor import attribution_batch_processor  # noqa: F401
