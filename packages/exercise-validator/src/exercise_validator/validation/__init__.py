from .command import configure_validate_parser, run_validate_command
from .executor import BlockExecutor, ValidationResult
from .orchestrator import ValidationReport, ValidationSummary, Validator, compute_score, resolve_targets

__all__ = [
    "BlockExecutor",
    "ValidationReport",
    "ValidationResult",
    "ValidationSummary",
    "Validator",
    "compute_score",
    "configure_validate_parser",
    "resolve_targets",
    "run_validate_command",
]
