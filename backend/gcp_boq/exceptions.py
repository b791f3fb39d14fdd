"""
BoQ engine exceptions.

Parse ambiguity and missing catalog prices are never raised: the parser
returns a sparse attribute set and the resolver degrades to fallback prices.
Everything below is either per-resource (caught by the orchestrator) or fatal
to the run / refresh cycle that raised it.
"""
from typing import Dict, List, Optional


class BoQError(Exception):
    """Base class for engine errors surfaced to callers."""

    status_code = 500


class InvalidResourceSpecificationError(BoQError):
    """
    Raised when a resource specification is missing a required field.

    Per-resource: the orchestrator logs it and skips the resource.
    """

    status_code = 422

    def __init__(self, resource_id: Optional[str], problems: List[str]):
        self.resource_id = resource_id
        self.problems = problems

        message = (
            f"Invalid resource specification {resource_id or '<unknown>'}: "
            f"{'; '.join(problems)}"
        )
        super().__init__(message)


class NoMatchingResourcesError(BoQError):
    """
    Raised when a calculation request selects no resource specifications.

    This is a "not found" outcome, not a failure of the engine.
    """

    status_code = 404

    def __init__(self, filters: Optional[Dict[str, List[str]]] = None):
        self.filters = {k: v for k, v in (filters or {}).items() if v}

        message = "No resource specifications found matching the criteria"
        if self.filters:
            applied = ", ".join(f"{k}={v}" for k, v in self.filters.items())
            message += f" ({applied})"
        super().__init__(message)


class CatalogRefreshError(BoQError):
    """Raised when a new catalog generation cannot be written."""

    def __init__(self, effective_date, reason: str):
        self.effective_date = effective_date
        self.reason = reason
        super().__init__(
            f"Catalog refresh for {effective_date} failed: {reason}"
        )


class StaleCatalogGenerationError(CatalogRefreshError):
    """
    Raised when a refresh is dated before the newest active generation.

    Nothing is written: deactivation only reaches older generations, so a
    backdated generation would stay active alongside the newer one.
    """

    status_code = 409

    def __init__(self, effective_date, active_date):
        self.active_date = active_date
        super().__init__(effective_date, f"active generation {active_date} is newer")


class ResultPersistenceError(BoQError):
    """Raised when computed line items cannot be saved. Fatal for the run."""

    def __init__(self, boq_id: str, count: int, reason: str):
        self.boq_id = boq_id
        self.count = count
        self.reason = reason
        super().__init__(
            f"Failed to save {count} BoQ line items for run {boq_id}: {reason}"
        )


class PricingFeedError(BoQError):
    """Raised when the raw pricing feed cannot be read."""

    status_code = 502

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Pricing feed {source} unavailable: {reason}")
