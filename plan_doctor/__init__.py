"""plan-doctor: turn pasted lesson-plan tables into structured plan documents."""

__version__ = "0.3.0"
