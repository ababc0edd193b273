"""SpecForge - AI-assisted research and spec generation service.

This package turns a natural-language app description into a six-gate
specification document through a conversational intake, a four-phase
research pipeline, and a validated generation step with auto-fix.
"""

__version__ = "0.1.0"
