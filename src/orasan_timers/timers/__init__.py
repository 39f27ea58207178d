"""
Timer subsystem.

Components:
- models.py: data structures (Timer, TimerStatus, TimerPhase, TimerAction)
- state_machine.py: pure transition function + capability flags
- reconcile.py: pure snapshot/restore/merge helpers
- limits.py: plan-tier cap on running timers
- store.py: in-memory TimerStore with subscribe/notify
- sync.py: optimistic update + rollback, per-task ordering, cancellable requests
- batch.py: all-or-nothing pause-all / stop-all
- ticker.py: display refresh loop
- view.py: view model + duration formatting
- engine.py: action entry points used by the presentation layer
"""
