"""Operations tooling for the AI Office medical-office application."""

__version__ = "0.1.0"
