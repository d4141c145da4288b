"""
Ledger, discovery, proving and beacon integration layer.

`shieldvault.integration.pipeline` is imported directly; it depends on
`shieldvault.agents`.
"""

from .ledger import CommitmentState, Ledger, NonceCommitmentInfo
from .memory_ledger import InMemoryLedger
from .discovery import DiscoveryResult, NonceDiscovery
from .reconstruct import load_previous_state
from .merkle_prover import prove_membership
from .inputs import CircuitInputs, CircuitMode, DepositForm, WithdrawForm

__all__ = [
    "CommitmentState",
    "Ledger",
    "NonceCommitmentInfo",
    "InMemoryLedger",
    "DiscoveryResult",
    "NonceDiscovery",
    "load_previous_state",
    "prove_membership",
    "CircuitInputs",
    "CircuitMode",
    "DepositForm",
    "WithdrawForm",
]
