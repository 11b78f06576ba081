"""
io_batch -- Bulk status processing for insertion orders.

Applies one status action (submit, review, approve) to many orders on a
thread pool, isolating each order's failure, and persists the job with its
per-order results.

Architecture:
    io_batch/ is a top-level package.  Nothing in io_kernel/ or
    io_engines/ imports from io_batch.
"""
