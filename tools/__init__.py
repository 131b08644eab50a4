"""
Tools Module

Capabilities that sandboxed code can call by name.

This module provides:
- Tool base class, @tool decorator and Toolbox registry
- Declarative tool interface schemas
- Conversion of tools into plain callables for the sandbox
- Static validation of tool class source
"""

__version__ = "0.1.0"
