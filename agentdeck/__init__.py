"""agentdeck: control and telemetry for AI agents running on a workflow engine."""

from .activation import ActivationPhase, ActivationReconciler, ActivationState
from .client import WorkflowEngineClient
from .config import AgentDeckConfig, load_config
from .contracts import ExecutionStatus, ExecutionSummary, TokenUsage, UsageReport
from .engine import get_relay
from .persistence import AgentConfiguration, get_repository
from .scheduler import PollingScheduler
from .sync import ConfigurationSynchronizer, build_projection
from .usage import UsageAggregator, UsageWindow, extract_usage
from .webhook import WebhookCommander

__version__ = "0.1.0"
__all__ = [
    "ActivationPhase",
    "ActivationReconciler",
    "ActivationState",
    "AgentConfiguration",
    "AgentDeckConfig",
    "ConfigurationSynchronizer",
    "ExecutionStatus",
    "ExecutionSummary",
    "PollingScheduler",
    "TokenUsage",
    "UsageAggregator",
    "UsageReport",
    "UsageWindow",
    "WebhookCommander",
    "WorkflowEngineClient",
    "build_projection",
    "extract_usage",
    "get_relay",
    "get_repository",
    "load_config",
]
