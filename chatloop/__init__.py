"""Terminal chat loop with tool-calling language models."""

__version__ = "0.1.0"
