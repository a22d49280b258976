"""
Comfy Workflow Meta - Workflow Metadata & Validation
=====================================================

Reads ComfyUI workflow graphs (API format or UI export wrapper), validates
them and derives an immutable metadata snapshot: model stack, generation
parameters, sampler chain, prompts, feature flags, complexity and
performance estimates, node relationships.

Installation:
    pip install comfy-workflow-meta                   # Core
    pip install comfy-workflow-meta[observability]    # + OpenTelemetry spans

Pipeline:
    sanitize -> resolve connections -> validate -> extract -> features -> estimate

The pipeline is synchronous, does no I/O and shares nothing between calls.
Content problems are reported as ValidationIssues, never raised.

Usage:
    from comfy_workflow_meta import MetadataAssembler, validate_workflow

    result = validate_workflow(workflow)
    if not result.is_valid:
        for issue in result.errors:
            print(issue.message)

    snapshot = MetadataAssembler().parse(workflow)
    print(snapshot.workflow.architecture, snapshot.generation.total_steps)
    payload = snapshot.to_dict()

    # Custom node packs
    from comfy_workflow_meta import DEFAULT_REGISTRY, NodeTypeSchema, output
    registry = DEFAULT_REGISTRY.extend({
        "IPAdapterApply": NodeTypeSchema(category="ipadapter", outputs=(output("MODEL"),)),
    })
    snapshot = MetadataAssembler(registry).parse(workflow)
"""

# Configuration (import first - other modules depend on it)
from .config import (
    Settings,
    settings,
    get_settings,
    reload_settings,
    LoggingConfig,
    AnalysisConfig,
)

# Exceptions (with verbosity levels)
from .exceptions import (
    WorkflowMetaError,
    WorkflowSyntaxError,
    NodeTypeRegistrationError,
    SnapshotAssemblyError,
    Result,
    ErrorLevel,
    VerbosityLevel,
    format_error_for_user,
    set_verbosity,
    get_verbosity,
)

# Logging (with OpenTelemetry support)
from .logging_config import (
    get_logger,
    set_log_level,
    set_request_id,
    clear_request_id,
    get_request_id,
    LogContext,
    log_timing,
    traced_operation,
)

# Graph model
from .graph import (
    ConnectionRef,
    LiteralValue,
    Node,
    WorkflowGraph,
)

# Output models
from .models import (
    Architecture,
    Complexity,
    IssueKind,
    MetadataSnapshot,
    PromptType,
    RelationshipEdge,
    Severity,
    ValidationIssue,
    ValidationResult,
    WorkflowFeatures,
)

# Node type registry
from .registry import (
    DEFAULT_REGISTRY,
    NodeTypeRegistry,
    NodeTypeSchema,
    OutputDescriptor,
    output,
)

# Pipeline stages
from .sanitizer import SanitizeResult, sanitize_workflow
from .validator import (
    StructuralValidator,
    validate_workflow,
    validate_workflow_json,
)
from .resolver import ConnectionResolver, ResolvedGraph, resolve_connections
from .extractor import ParameterExtractor, infer_architecture
from .features import FEATURE_RULES, FeatureDetector, FeatureRule, detect_features
from .complexity import ComplexityEstimate, ComplexityEstimator
from .assembler import MetadataAssembler, parse_workflow_metadata

# Snapshot comparison
from .compare import (
    ComparisonEntry,
    ComparisonStatus,
    compare_snapshots,
    summarize_comparison,
)

__version__ = "1.2.0"

__all__ = [
    # Configuration
    "Settings",
    "settings",
    "get_settings",
    "reload_settings",
    "LoggingConfig",
    "AnalysisConfig",
    # Exceptions (with verbosity)
    "WorkflowMetaError",
    "WorkflowSyntaxError",
    "NodeTypeRegistrationError",
    "SnapshotAssemblyError",
    "Result",
    "ErrorLevel",
    "VerbosityLevel",
    "format_error_for_user",
    "set_verbosity",
    "get_verbosity",
    # Logging
    "get_logger",
    "set_log_level",
    "set_request_id",
    "clear_request_id",
    "get_request_id",
    "LogContext",
    "log_timing",
    "traced_operation",
    # Graph model
    "ConnectionRef",
    "LiteralValue",
    "Node",
    "WorkflowGraph",
    # Output models
    "Architecture",
    "Complexity",
    "IssueKind",
    "MetadataSnapshot",
    "PromptType",
    "RelationshipEdge",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowFeatures",
    # Registry
    "DEFAULT_REGISTRY",
    "NodeTypeRegistry",
    "NodeTypeSchema",
    "OutputDescriptor",
    "output",
    # Pipeline
    "SanitizeResult",
    "sanitize_workflow",
    "StructuralValidator",
    "validate_workflow",
    "validate_workflow_json",
    "ConnectionResolver",
    "ResolvedGraph",
    "resolve_connections",
    "ParameterExtractor",
    "infer_architecture",
    "FEATURE_RULES",
    "FeatureDetector",
    "FeatureRule",
    "detect_features",
    "ComplexityEstimate",
    "ComplexityEstimator",
    "MetadataAssembler",
    "parse_workflow_metadata",
    # Comparison
    "ComparisonEntry",
    "ComparisonStatus",
    "compare_snapshots",
    "summarize_comparison",
    # Version
    "__version__",
]
