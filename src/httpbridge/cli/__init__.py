"""
httpbridge CLI: Typer application.

Entry point: ``httpbridge`` (see ``pyproject.toml [project.scripts]``).
"""
