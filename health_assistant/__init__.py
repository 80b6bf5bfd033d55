"""Elder Health Assistant - Gemini relay for report, medicine and food reading."""

__version__ = "0.3.0"
