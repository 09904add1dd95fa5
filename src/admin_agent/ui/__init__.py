"""UI module for the admin agent.

The CLI can be run directly:
    python -m admin_agent.ui.cli ask "Your request here"

Note: We don't export CLI components from __init__.py to avoid
module loading issues when running as a script.
"""

__all__ = []  # CLI is run directly, no exports needed
