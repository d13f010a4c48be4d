"""Allow ``python -m artistgraph.cli`` execution."""

from artistgraph.cli.discover import main

main()
