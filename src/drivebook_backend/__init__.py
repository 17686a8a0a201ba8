"""DriveBook booking and payment reconciliation backend."""
