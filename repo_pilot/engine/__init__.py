"""Task orchestration engine.

This package drives an issue from the first mention to a mergeable pull
request: it polls comments incrementally, classifies them into typed events,
routes each event against the persisted task state and runs the planning and
execute/verify/retry stages.

Key Components:
    - PilotOrchestrator: One poll cycle (fetch, parse, route, checkpoint)
    - EventRouter: Maps a typed event and the current task status to an action
    - TaskStore: Durable task records with validated status transitions
    - PollStateStore: Poll checkpoint and processed-event ledger
    - parse_comment: Trigger keyword classification

Example:
    >>> from repo_pilot.engine.orchestrator import PilotOrchestrator
    >>> orchestrator = PilotOrchestrator(settings, repo, tracker, agent, workspace)
    >>> await orchestrator.run_cycle()
"""
