"""
Meow - an always-on personal assistant core.

Selects a language model, grounds it with layered persistent memory,
runs a bounded tool-calling loop, and writes durable facts back to
memory before the context window fills up.
"""

__version__ = "0.1.0"
__author__ = "Meow Contributors"
