"""ChatAstro: conversational Vedic astrology backend."""

__version__ = "1.0.0"
