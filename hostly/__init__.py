"""
Hostly - A hosting manager for user-supplied web projects.

Classifies uploaded or cloned sites, supervises Node.js sites as child
processes with per-site log capture, and serves static sites directly.
"""

__version__ = "0.1.0"
