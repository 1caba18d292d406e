"""Submission orchestration: deadlines, the state machine driver, status views.

Import from the submodules directly; ``patchx.resolution.engine`` depends on
``patchx.orchestration.deadline``, so this package does not import the
orchestrator eagerly.
"""
