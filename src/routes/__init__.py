"""
Flask Blueprints organised by domain.

Blueprints reach shared collaborators through ``current_app`` (config and
``extensions["context_provider"]``) rather than module globals.
"""

from .observability_bp import observability_bp

__all__ = [
    "observability_bp",
]
