"""Interactive ECS Exec helper.

The command surface is implemented with Typer and Rich, prompts use
questionary, and the final shell is delegated to ``aws ecs execute-command``.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
