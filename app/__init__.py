"""Premium generation credits service.

Credit ledger and premium authorization gate in front of the review
generation pipeline.
"""

__version__ = "1.0.0"
