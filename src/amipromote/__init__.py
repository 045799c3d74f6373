"""amipromote - golden image promotion and rollback for AWS fleets

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Security by design (no credentials in code)
- Fail fast with helpful guidance

amipromote selects immutable golden AMIs by tag, promotes them to an
environment's launch template, starts a rolling instance refresh of the
environment's Auto Scaling Group, and rolls back to a previous image with an
audit trail when a release goes bad.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
