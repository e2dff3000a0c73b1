# =============================================================================
# folio_ingest/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables `python -m folio_ingest.cli <command>`; delegates to ingest.py.
# =============================================================================

"""Allow ``python -m folio_ingest.cli`` execution."""

from folio_ingest.cli.ingest import main

main()
