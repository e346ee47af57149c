from proofbridge.submission.submitter import (
    ContributionReceipt,
    ContributionRequest,
    ContributionSubmitter,
)

__all__ = ["ContributionReceipt", "ContributionRequest", "ContributionSubmitter"]
