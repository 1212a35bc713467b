"""Choropleth dashboard core for Expected Annual Impact (EAI) risk metrics."""

__version__ = "0.3.0"
