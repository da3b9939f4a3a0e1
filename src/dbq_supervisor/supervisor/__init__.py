"""Supervision of one remote delete-by-query job.

The remote runs the deletion and is the only source of truth for progress.
This package submits the job, polls it on fixed intervals, folds progress
across restarts, resubmits after partial failures, and forwards an operator
interrupt to the remote as a cancel request before the process exits.

Only one job is ever active. A restart always submits a fresh job; the remote
skips documents that are already gone, so the cumulative counter is the sum
of what each completed job reports.
"""
