"""Workflow stages invoked by the event router.

Available Stages:
    - PlanningStage: Ask the AI assistant for a plan and post it to the issue
    - ExecutionStage: Generate, verify and retry a change, then open a pull request
"""
