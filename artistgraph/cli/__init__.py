"""Command-line tools for artistgraph.

- ``python -m artistgraph.cli run-batch``: discover relationships from tracks
- ``python -m artistgraph.cli enrich-artists``: enrich stored artist profiles
- ``python -m artistgraph.cli discover NAME``: discover one artist
- ``python -m artistgraph.cli import-tracks FILE``: load tracks from JSON Lines
- ``python -m artistgraph.cli quota-status``: show provider quota usage
"""
