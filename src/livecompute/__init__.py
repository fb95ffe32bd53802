"""Reactive recomputation of form outputs from declarative expressions."""

__all__ = [
    "AsyncioTimers",
    "AsyncioYield",
    "BoundTree",
    "ConfigError",
    "ConvergenceDetector",
    "Debouncer",
    "DependencyGraph",
    "EngineSettings",
    "EngineState",
    "EvaluationError",
    "ExpressionEvaluator",
    "ExpressionSyntaxError",
    "FormDocument",
    "FormatKind",
    "LinkGraph",
    "ManualTimers",
    "ManualYield",
    "MemoryTree",
    "NodeRegistry",
    "NumberLocale",
    "OutputModel",
    "OutputNode",
    "OutputSpec",
    "Priority",
    "ReactiveEngine",
    "SchedulerEntry",
    "SynchronousYield",
    "TreeListener",
    "UpdateScheduler",
    "Verdict",
    "build_link_graph",
    "collect_results",
    "evaluate",
    "export_results",
    "extract_variables",
    "format_value",
    "load_form",
    "load_settings",
    "to_date",
    "to_number",
    "variable_name",
]

from ._coerce import FormatKind, NumberLocale, format_value, to_date, to_number
from ._config import ConfigError, EngineSettings, load_settings
from ._convergence import ConvergenceDetector, Verdict
from ._debounce import AsyncioTimers, Debouncer, ManualTimers
from ._engine import EngineState, ReactiveEngine
from ._expr import EvaluationError, ExpressionEvaluator, ExpressionSyntaxError, evaluate, extract_variables
from ._graph import DependencyGraph, LinkGraph, build_link_graph
from ._io import FormDocument, OutputModel, collect_results, export_results, load_form
from ._names import variable_name
from ._node import NodeRegistry, OutputNode
from ._scheduler import AsyncioYield, ManualYield, Priority, SchedulerEntry, SynchronousYield, UpdateScheduler
from ._tree import BoundTree, MemoryTree, OutputSpec, TreeListener
