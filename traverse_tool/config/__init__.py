"""
Config Package

Configuration and data models for the traverse tool.
"""
from .settings import (
    get_settings,
    Settings,
    EngineConfig,
    SystemConfig,
    AdjustmentMode,
    ToleranceMode,
    normalize_code,
    point_code_for_run,
)

from .leveling_classes import (
    ToleranceOption,
    LevelingMethodOption,
    LevelingClassOption,
    METHOD_REGISTRY,
    CLASS_REGISTRY,
    get_method_option,
    get_class_option,
    get_default_method,
    get_default_class,
    list_options,
)

from .models import (
    Station,
    Run,
    SharedPoint,
    TraverseSystem,
    CalculationContext,
    HeightPool,
    ClosureMode,
    CorrectionDisplayMode,
    VerdictStatus,
    ClosureResult,
    StationCorrection,
    CorrectionResult,
    PropagationResult,
    ConnectivityResult,
    TraverseCalculationRequest,
    TraverseCalculationResult,
)

__all__ = [
    # Settings
    'get_settings',
    'Settings',
    'EngineConfig',
    'SystemConfig',
    'AdjustmentMode',
    'ToleranceMode',
    'normalize_code',
    'point_code_for_run',

    # Tolerance options
    'ToleranceOption',
    'LevelingMethodOption',
    'LevelingClassOption',
    'METHOD_REGISTRY',
    'CLASS_REGISTRY',
    'get_method_option',
    'get_class_option',
    'get_default_method',
    'get_default_class',
    'list_options',

    # Models
    'Station',
    'Run',
    'SharedPoint',
    'TraverseSystem',
    'CalculationContext',
    'HeightPool',
    'ClosureMode',
    'CorrectionDisplayMode',
    'VerdictStatus',
    'ClosureResult',
    'StationCorrection',
    'CorrectionResult',
    'PropagationResult',
    'ConnectivityResult',
    'TraverseCalculationRequest',
    'TraverseCalculationResult',
]
