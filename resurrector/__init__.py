"""README Resurrector: regenerate stale READMEs with MCP tool agents."""

__version__ = "1.0.0"
