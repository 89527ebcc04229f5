"""
nhdquery: spatial overlay and flow-network reach queries over NHDPlus hydrography.
"""

__version__ = "0.1.0"
