"""
cynicalclaw - Plan-execute-reflect agent core with tiered model routing and compacting memory.
"""

__version__ = "0.1.0"
__logo__ = "🦇"


def __getattr__(name):
    """Lazy imports for heavy modules to keep startup fast."""
    if name == "AgentLoop":
        from cynicalclaw.agent.loop import AgentLoop
        return AgentLoop
    if name == "create_core":
        from cynicalclaw.factory import create_core
        return create_core
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["__version__", "__logo__", "AgentLoop", "create_core"]
