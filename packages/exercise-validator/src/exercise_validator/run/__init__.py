from .command import configure_run_parser, run_run_command

__all__ = ["configure_run_parser", "run_run_command"]
