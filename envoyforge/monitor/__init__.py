"""Terminal rendering of run reports.

Modules
-------
renderer
    ``RunRenderer`` turns a ``PipelineResult`` into a Rich panel with one
    row per stage, and lists the retention store's contents.
"""
