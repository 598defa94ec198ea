"""EatWhat - ingredient-driven home cooking recommendations."""

__version__ = "0.1.0"
