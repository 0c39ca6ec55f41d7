"""
opi-loader: NC DAC Offender Public Information fixed-width files to a
normalized relational database.
"""

__version__ = "0.3.0"
