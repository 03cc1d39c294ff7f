"""Grammar Coach: AI grading of student grammar explanations."""

__version__ = "0.3.0"
