"""
TokenWatch - Evidence Corroboration & Drift-Detection Engine
"""

__version__ = "0.1.0"
