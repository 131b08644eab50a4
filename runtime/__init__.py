"""
Runtime Module

Configuration and entry points around the sandbox.

This module provides:
- YAML-based configuration loading
- Code-blob parsing and observation formatting
- Failure classification
- CLI for running code and validating tools
"""

__version__ = "0.1.0"
