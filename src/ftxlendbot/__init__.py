"""
ftxlendbot - FTX spot margin lending bot

Offers the balance of one currency on the FTX spot margin market once an hour,
slightly below the estimated lending rate.
"""

__version__ = "0.1.0"

from ftxlendbot.main import main


__all__ = ["__version__", "main"]
