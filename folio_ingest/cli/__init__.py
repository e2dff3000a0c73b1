# =============================================================================
# folio_ingest/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Operator tooling for the ingestion pipeline.  The single module,
# ingest.py, wraps IngestionRuntime (folio_ingest/main.py) so a
# deployment can:
#
#   1. run the worker pool as a long-lived process (`worker`)
#   2. push a file through intake from the shell (`submit`)
#   3. re-run a document after fixing a provider outage (`reingest`)
#   4. inspect a document record or job (`status`)
#   5. check queue health and counters (`stats`)
#
# Architecture Notes:
#   - argparse for argument parsing (no Click/Typer).
#   - Each command builds its own runtime through running_runtime(), so
#     SQLite and the broker are always closed on exit.
# =============================================================================

"""CLI tools for the folio-ingest pipeline.

- ``python -m folio_ingest.cli`` - worker, submit, reingest, status, stats.
"""
