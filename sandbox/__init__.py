"""
Sandbox Module

Restricted in-process execution of untrusted, model-generated Python code.

This module provides:
- An explicit capability table and module allow-list
- Static checks against reflection escapes
- Wall-clock timeout and operation counting
- Captured and truncated print output
- Interpreter sessions with persistent state across calls

WARNING: This sandbox is a language-level capability restriction, not an
OS-level isolation boundary.
"""

__version__ = "0.1.0"
