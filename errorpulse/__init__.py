"""errorpulse: error grouping and rule-based alerting.

Groups captured application errors into incidents by fingerprint and
notifies operators when alert rules fire, with per-(rule, incident)
deduplication.
"""

__version__ = "0.1.0"
