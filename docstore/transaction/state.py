"""
Transaction state management.

Defines transaction states and state transitions.
"""

from enum import Enum


class TransactionState(Enum):
    """
    Transaction lifecycle states.

    State transitions:
    OPEN → COMMITTING → COMMITTED
        ↘ ROLLING_BACK → ROLLED_BACK
    COMMITTING / ROLLING_BACK → FAILED (terminal RPC raised)
    """

    OPEN = "OPEN"  # Reads and writes allowed, no terminal RPC issued
    COMMITTING = "COMMITTING"  # Commit RPC in flight
    ROLLING_BACK = "ROLLING_BACK"  # Rollback RPC in flight
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"
    FAILED = "FAILED"  # Commit or rollback raised

    def is_terminal(self) -> bool:
        """Check if state is terminal (done)."""
        return self in (
            TransactionState.COMMITTED,
            TransactionState.ROLLED_BACK,
            TransactionState.FAILED,
        )

    def can_transition_to(self, new_state: 'TransactionState') -> bool:
        """
        Check if transition to new state is valid.

        Args:
            new_state: Target state

        Returns:
            True if transition is valid
        """
        valid_transitions = {
            TransactionState.OPEN: {
                TransactionState.COMMITTING,
                TransactionState.ROLLING_BACK,
            },
            TransactionState.COMMITTING: {
                TransactionState.COMMITTED,
                TransactionState.FAILED,
            },
            TransactionState.ROLLING_BACK: {
                TransactionState.ROLLED_BACK,
                TransactionState.FAILED,
            },
            TransactionState.COMMITTED: set(),  # Terminal
            TransactionState.ROLLED_BACK: set(),  # Terminal
            TransactionState.FAILED: set(),  # Terminal
        }

        return new_state in valid_transitions.get(self, set())
