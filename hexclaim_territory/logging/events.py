"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

Typed event names for structured logging of run processing and claims.

Event Naming Convention:
    <component>.<category>.<action>

    component: trace, run, territory, grouping, error
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - trace.*: GPS trace filtering and simplification
    - run.*: Run validation verdicts
    - territory.*: Claim batches written to the ledger
    - grouping.*: Region recomputation
    - error.*: Error conditions
    """

    # ========== Trace Events ==========
    TRACE_FILTERED = "trace.filtered"
    """Raw trace filtered for accuracy, teleport and speed anomalies."""

    TRACE_SIMPLIFIED = "trace.simplified"
    """Filtered trace reduced with Douglas-Peucker."""

    # ========== Run Events ==========
    RUN_VALIDATED = "run.validated"
    """Run accepted by the validator."""

    RUN_REJECTED = "run.rejected"
    """Run rejected with a policy reason."""

    # ========== Territory Events ==========
    TERRITORY_RASTERIZED = "territory.rasterized"
    """Run polygon converted to a set of cells."""

    TERRITORY_CLAIMED = "territory.claimed"
    """Claim batch written to the store."""

    # ========== Grouping Events ==========
    GROUPING_COMPLETED = "grouping.completed"
    """Ledger partitioned into regions."""

    # ========== Config Events ==========
    CONFIG_LOADED = "config.loaded"
    """Engine configuration loaded from YAML."""

    # ========== Error Events ==========
    STORE_ERROR = "error.store"
    """Territory store rejected a batch."""

