from importlib import metadata

try:
    __version__ = metadata.version("paramid")
except Exception:
    __version__ = "unknown"

from .errors import (
    ParamIdError,
    ConfigurationError,
    ModelEvaluationError,
    UnmetEventError,
    ConvergenceWarning,
    IdentifiabilityWarning,
)
from .model import StateVariable, DerivedParameter, EventSpec, ParameterValues, DynamicsModel
from .trajectory import Trajectory, Segment, DetectedEvent
from .simulator import TrajectorySimulator
from .constraints import (
    PointConstraint,
    EventConstraint,
    SettlingConstraint,
    CompiledConstraint,
    compile_constraints,
)
from .loss import LossComponent, LossBreakdown, LossComposer
from .scaling import ParameterScaler
from .config import SolverConfig
from .optimizer import ConvergenceStatus, MultiStartOptimizer, OptimizationResult, RestartSummary
from .plan import SolutionBlock, SolutionPlan, build_solution_plan
from .identifiability import IdentifiabilityAnalyzer, IdentifiabilityReport
from .solver import ParameterSolver, SolverResult
from .utils.logger import LoggerManager
