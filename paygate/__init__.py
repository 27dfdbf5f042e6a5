"""paygate: run a workflow only after a verified, off-band payment.

Three pieces:
- sessions: checkout session lifecycle with the Payment Service
- webhooks: signature/freshness verification of payment confirmations
- runs: submission and bounded polling of remotely executed jobs
"""

__version__ = "0.1.0"
