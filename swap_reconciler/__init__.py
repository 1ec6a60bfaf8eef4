"""
Date-Swap Reconciler — repairs day/month transposition in stored dates.

Architecture: Record Source → Swap Detector → Reconciliation Driver (analyze / fix / verify)
Philosophy:  Trust the machine timestamp. Correct only what a clean transposition explains.
"""

__version__ = "1.0.0"
