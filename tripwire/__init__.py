"""tripwire — trigger-driven command orchestration daemon.

tripwire polls declarative triggers attached to named projects and, when one
fires, runs the project's dependency commands followed by its own commands,
injecting environment variables derived from the trigger evaluation.

Layers (bottom to top):
    1. Store         — YAML configuration document, cross-process lock
    2. Triggers      — trigger parsing, release lookup, version comparison
    3. Orchestration — process supervisor, dependency executor, poll loop,
                       shutdown controller
    4. CLI           — typer application wiring everything together
"""

__version__ = "0.1.0"
__config_version__ = "1.0"
__license__ = "Apache-2.0"

__all__ = [
    "__version__",
    "__config_version__",
]
