"""
Traverse Adjustment Tool
========================
A Python package for adjusting geodetic leveling traverses.

Features:
- Closure and tolerance checks by leveling method and accuracy class
- Closure distribution between benchmarks (whole run or per section)
- Height propagation within runs and across shared points
- Automatic partitioning of runs into independent systems
"""

__version__ = "1.0.0"
__author__ = "Geodetic Tools"

from .config.models import Station, Run, CalculationContext, TraverseCalculationRequest
from .config.settings import Settings
from .engine.workflow import TraverseCalculationWorkflow, calculate_traverse
