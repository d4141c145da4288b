"""Exception taxonomy for private-state reconstruction and proof assembly.

Transient errors may be retried or answered from the checkpoint cache.
Reconstruction errors are fatal for the current proof attempt and are never
cached. Validation errors are raised before any cryptographic work starts.
"""

from __future__ import annotations

from typing import Optional


class ShieldVaultError(Exception):
    """Base class for all shieldvault errors."""


class TransientLedgerError(ShieldVaultError):
    """Ledger or network unavailable (including per-query timeouts)."""


class ValidationError(ShieldVaultError, ValueError):
    """Malformed user input."""


class NotInitializedError(ShieldVaultError):
    """No nonce-0 record exists for this (account, token)."""


class NonceUnknownError(ShieldVaultError):
    """No authoritative discovered nonce is available; proof assembly is blocked."""


class ProverError(ShieldVaultError):
    """The proving backend failed or returned malformed output."""


class BeaconError(ShieldVaultError):
    """Randomness beacon request failed."""


class TimelockError(ShieldVaultError):
    """Malformed timelock envelope, or a signature that does not open it."""


class OrderChainError(ShieldVaultError):
    """A decrypted order does not extend the published hashchain."""


def _fmt(value: object) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return "0x" + format(value, "064x")
    return str(value)


class ReconstructionError(ShieldVaultError):
    """Local reconstruction disagrees with the ledger.

    The values involved are kept as attributes and rendered into the message
    so the inconsistency can be audited.
    """

    def __init__(
        self,
        message: str,
        *,
        token: Optional[str] = None,
        nonce: Optional[int] = None,
        leaf: Optional[int] = None,
        root: Optional[int] = None,
        index: Optional[int] = None,
    ) -> None:
        self.token = token
        self.nonce = nonce
        self.leaf = leaf
        self.root = root
        self.index = index
        details = []
        if token is not None:
            details.append(f"token={token}")
        if nonce is not None:
            details.append(f"nonce={nonce}")
        if index is not None:
            details.append(f"index={index}")
        if leaf is not None:
            details.append(f"leaf={_fmt(leaf)}")
        if root is not None:
            details.append(f"root={_fmt(root)}")
        super().__init__(f"{message} ({', '.join(details)})" if details else message)


class DecryptionError(ReconstructionError):
    """A present record decrypted to an implausible value."""


class LeafNotFoundError(ReconstructionError):
    """The reconstructed leaf is not in the ledger's tree."""


class RootMismatchError(ReconstructionError):
    """A Merkle proof does not recompute to the expected root."""


class PublicSignalLayoutError(ReconstructionError):
    """Prover output does not match the pinned public-signal layout."""

    def __init__(self, message: str, *, expected: Optional[int] = None, actual: Optional[int] = None) -> None:
        self.expected = expected
        self.actual = actual
        if expected is not None or actual is not None:
            message = f"{message} (expected={expected}, actual={actual})"
        super().__init__(message)
