"""backlogctx - token-budgeted context hydration for structured backlogs."""

__version__ = "0.1.0"
