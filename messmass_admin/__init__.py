"""MessMass admin dashboard: REST API plus ReactPy admin pages."""

__version__ = "0.1.0"
