"""IEP Goals Import - parse, match and scrub third-party IEP goal reports.

This package provides a three-stage pipeline that turns heterogeneous
special-education reports into roster-matched, PII-scrubbed goal
previews for human review.
"""

__version__ = "0.1.0"
__author__ = "IEP Import Team"

__all__ = [
    "__version__",
    "__author__",
]
