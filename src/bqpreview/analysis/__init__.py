"""Trigger gating, debouncing and single-flight execution of dry runs."""

from .change_tracker import ChangeTracker
from .coordinator import AnalysisCoordinator, AnalysisOutcome
from .debounce import Debouncer, SelectionStabilizer
from .rate_gate import RateGate, TriggerKind, should_run
from .result_state import AnalysisPhase, AnalysisResult, ResultState
from .save_close import CloseSaveDisambiguator
from .single_flight import SKIPPED, RunState, SingleFlightExecutor
from .stats import DryRunSnapshot, DryRunStats

__all__ = [
    "AnalysisCoordinator",
    "AnalysisOutcome",
    "AnalysisPhase",
    "AnalysisResult",
    "ChangeTracker",
    "CloseSaveDisambiguator",
    "Debouncer",
    "DryRunSnapshot",
    "DryRunStats",
    "RateGate",
    "ResultState",
    "RunState",
    "SKIPPED",
    "SelectionStabilizer",
    "SingleFlightExecutor",
    "TriggerKind",
    "should_run",
]
