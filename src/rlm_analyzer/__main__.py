"""Entry point for python -m rlm_analyzer execution.

This module enables running rlm-analyzer as a module:
    python -m rlm_analyzer --help
    python -m rlm_analyzer analyze ./contracts/ -q "Who owes what?"
"""

from rlm_analyzer.cli import app

if __name__ == "__main__":
    app()
