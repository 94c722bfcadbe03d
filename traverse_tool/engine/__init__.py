"""
Engine Package

Core leveling adjustment modules.
"""
from .errors import (
    ToleranceInputError,
    InvalidRequestError
)

from .tolerance import (
    ToleranceCalculator,
    calculate_tolerance
)

from .closure import (
    ClosureCalculator
)

from .correction import (
    AnchorPoint,
    CorrectionDistributor,
    distribute_closure
)

from .alias_manager import (
    AliasRecord,
    AliasManager,
    RunHeightTracker,
    build_aliases
)

from .height_propagator import (
    HeightPropagator,
    propagate_heights
)

from .connectivity import (
    RunGraph,
    SystemConnectivityAnalyzer,
    find_shared_points,
    partition_runs
)

from .workflow import (
    TraverseCalculationWorkflow,
    calculate_traverse
)

__all__ = [
    # Errors
    'ToleranceInputError',
    'InvalidRequestError',

    # Tolerance and closure
    'ToleranceCalculator',
    'calculate_tolerance',
    'ClosureCalculator',

    # Corrections
    'AnchorPoint',
    'CorrectionDistributor',
    'distribute_closure',

    # Aliases and heights
    'AliasRecord',
    'AliasManager',
    'RunHeightTracker',
    'build_aliases',
    'HeightPropagator',
    'propagate_heights',

    # Systems
    'RunGraph',
    'SystemConnectivityAnalyzer',
    'find_shared_points',
    'partition_runs',

    # Workflow
    'TraverseCalculationWorkflow',
    'calculate_traverse',
]
