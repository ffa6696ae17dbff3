"""
Issues Module
=============

Bounded context for the civic issue triage pipeline.

Responsibilities:
- Validate citizen submissions and store the photo
- Classify issues with a multimodal model, degrading to "Other" on failure
- Govern the pending / in_progress / resolved lifecycle
- Route issues to departments
"""

__version__ = "1.0.0"
